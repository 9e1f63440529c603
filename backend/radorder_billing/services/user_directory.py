from __future__ import annotations

from sqlalchemy.orm import Session

from ..models.user import ADMIN_ROLES, User


def list_admin_emails(db: Session, organization_id: int) -> list[str]:
    """Emails of the organization's active administrators, in creation order."""
    rows = (
        db.query(User.email)
        .filter(
            User.organization_id == organization_id,
            User.role.in_(ADMIN_ROLES),
            User.is_active.is_(True),
        )
        .order_by(User.id.asc())
        .all()
    )
    seen: set[str] = set()
    emails: list[str] = []
    for (email,) in rows:
        normalized = (email or "").strip().lower()
        if normalized and normalized not in seen:
            seen.add(normalized)
            emails.append(normalized)
    return emails
