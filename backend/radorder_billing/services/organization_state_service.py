from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..models.organization import Organization, OrganizationStatus


class OrganizationNotFoundError(LookupError):
    """A provider event references an organization this service does not know."""

    def __init__(self, reference: str):
        super().__init__(f"No organization found for {reference}")
        self.reference = reference


@dataclass(frozen=True)
class OrganizationSnapshot:
    id: int
    name: str
    type: str
    billing_id: Optional[str]
    credit_balance: int
    status: str
    subscription_tier: Optional[str]

    @property
    def in_purgatory(self) -> bool:
        return self.status == OrganizationStatus.PURGATORY.value


def _locked(db: Session):
    # Row-level write lock held until the handler transaction ends; SQLite ignores it.
    return db.query(Organization).with_for_update()


def lock_organization_by_id(db: Session, organization_id: int) -> Organization:
    org = _locked(db).filter(Organization.id == organization_id).first()
    if org is None:
        raise OrganizationNotFoundError(f"organization id {organization_id}")
    return org


def lock_organization_by_billing_id(db: Session, billing_id: str | None) -> Organization:
    if not billing_id:
        raise OrganizationNotFoundError("an event without a customer id")
    org = _locked(db).filter(Organization.billing_id == billing_id).first()
    if org is None:
        raise OrganizationNotFoundError(f"billing id {billing_id}")
    return org


def billing_id_owner(db: Session, billing_id: str) -> Optional[int]:
    """Id of the organization already holding ``billing_id``, if any."""
    row = db.query(Organization.id).filter(Organization.billing_id == billing_id).first()
    return row[0] if row else None


def snapshot(org: Organization) -> OrganizationSnapshot:
    return OrganizationSnapshot(
        id=org.id,
        name=org.name,
        type=org.type,
        billing_id=org.billing_id,
        credit_balance=int(org.credit_balance or 0),
        status=org.status or OrganizationStatus.ACTIVE.value,
        subscription_tier=org.subscription_tier,
    )


def apply_state(
    org: Organization,
    *,
    credit_balance: int,
    status: str,
    subscription_tier: str | None,
) -> None:
    if credit_balance < 0:
        raise ValueError("insufficient_credits")
    org.credit_balance = int(credit_balance)
    org.status = status
    org.subscription_tier = subscription_tier
