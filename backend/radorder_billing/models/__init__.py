from .user import User
from .organization import Organization, OrganizationStatus, OrganizationType
from .billing_event import BillingEvent, BillingEventType
from .purgatory_event import PurgatoryEvent, PurgatoryEventStatus, PurgatoryReason
from .organization_relationship import OrganizationRelationship, RelationshipStatus
from .webhook_dead_letter import WebhookDeadLetter

__all__ = [
    "User",
    "Organization",
    "OrganizationStatus",
    "OrganizationType",
    "BillingEvent",
    "BillingEventType",
    "PurgatoryEvent",
    "PurgatoryEventStatus",
    "PurgatoryReason",
    "OrganizationRelationship",
    "RelationshipStatus",
    "WebhookDeadLetter",
]
