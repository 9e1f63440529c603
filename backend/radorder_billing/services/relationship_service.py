from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from ..models.organization import Organization, OrganizationStatus
from ..models.organization_relationship import OrganizationRelationship, RelationshipStatus

logger = logging.getLogger(__name__)


def _involving(organization_id: int):
    return or_(
        OrganizationRelationship.organization_id == organization_id,
        OrganizationRelationship.related_organization_id == organization_id,
    )


def cascade_to_purgatory(db: Session, organization_id: int) -> int:
    """Suspend every active relationship the organization participates in."""
    updated = (
        db.query(OrganizationRelationship)
        .filter(
            _involving(organization_id),
            OrganizationRelationship.status == RelationshipStatus.ACTIVE.value,
        )
        .update(
            {
                OrganizationRelationship.status: RelationshipStatus.PURGATORY.value,
                OrganizationRelationship.updated_at: func.now(),
            },
            synchronize_session=False,
        )
    )
    logger.info("Moved %d relationship(s) of org_id=%s to purgatory", updated, organization_id)
    return int(updated or 0)


def cascade_to_active(db: Session, organization_id: int) -> int:
    """Reactivate suspended relationships whose counterpart is also active.

    Counterpart organizations are read under a write lock so their status
    cannot change between this check and the commit. The caller already holds
    its own organization's lock, so two linked organizations reactivating at
    the same time can deadlock; the database aborts one of them, which
    surfaces as a retryable 500 and succeeds on the provider's redelivery.
    """
    suspended = (
        db.query(OrganizationRelationship)
        .filter(
            _involving(organization_id),
            OrganizationRelationship.status == RelationshipStatus.PURGATORY.value,
        )
        .order_by(OrganizationRelationship.id.asc())
        .all()
    )
    if not suspended:
        return 0

    def counterpart(rel: OrganizationRelationship) -> int:
        if rel.organization_id == organization_id:
            return rel.related_organization_id
        return rel.organization_id

    counterpart_ids = sorted({counterpart(rel) for rel in suspended} - {organization_id})
    statuses: dict[int, str] = {}
    if counterpart_ids:
        statuses = {
            org_id: status
            for org_id, status in db.query(Organization.id, Organization.status)
            .filter(Organization.id.in_(counterpart_ids))
            .order_by(Organization.id.asc())
            .with_for_update()
            .all()
        }

    reactivated = 0
    for rel in suspended:
        other_id = counterpart(rel)
        if other_id != organization_id and statuses.get(other_id) != OrganizationStatus.ACTIVE.value:
            continue
        rel.status = RelationshipStatus.ACTIVE.value
        reactivated += 1
    db.flush()
    logger.info(
        "Reactivated %d of %d suspended relationship(s) for org_id=%s",
        reactivated,
        len(suspended),
        organization_id,
    )
    return reactivated
