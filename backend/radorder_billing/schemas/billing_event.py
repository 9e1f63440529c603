"""Canonical, typed views of the Stripe webhook events the billing ledger consumes.

Provider payloads are validated here, once, at the HTTP boundary. Field-name
variants across Stripe API versions (expanded vs. bare ids, the invoice
``parent.subscription_details`` move) are folded into one shape so the handlers
never look at raw dictionaries.
"""
from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

ORG_ID_METADATA_KEY = "radorderpad_org_id"
BUNDLE_METADATA_KEY = "credit_bundle_price_id"


def _object_id(value: Any) -> Optional[str]:
    """Return the id of a possibly-expanded Stripe reference."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("id")
    text = str(value or "").strip()
    return text or None


def _nested_get(payload: Any, *path: Any) -> Any:
    current = payload
    for key in path:
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list) and isinstance(key, int):
            current = current[key] if -len(current) <= key < len(current) else None
        else:
            return None
    return current


class CheckoutSessionObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    customer: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    organization_id: Optional[int] = None
    bundle_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _canonicalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data["customer"] = _object_id(data.get("customer"))
        metadata = data.get("metadata") or {}
        data["metadata"] = metadata
        raw_org_id = metadata.get(ORG_ID_METADATA_KEY)
        try:
            data["organization_id"] = int(raw_org_id) if raw_org_id not in (None, "") else None
        except (TypeError, ValueError):
            data["organization_id"] = None
        data["bundle_id"] = _object_id(metadata.get(BUNDLE_METADATA_KEY))
        return data


class InvoiceObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    number: Optional[str] = None
    customer: Optional[str] = None
    subscription: Optional[str] = None
    amount_paid: int = 0
    amount_due: int = 0
    currency: Optional[str] = None
    attempt_count: int = 0
    price_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _canonicalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data["customer"] = _object_id(data.get("customer"))
        data["subscription"] = _object_id(
            data.get("subscription")
            or _nested_get(data, "parent", "subscription_details", "subscription")
        )
        first_line = _nested_get(data, "lines", "data", 0) or {}
        data["price_id"] = _object_id(
            _nested_get(first_line, "price")
            or _nested_get(first_line, "pricing", "price_details", "price")
        )
        for key in ("amount_paid", "amount_due", "attempt_count"):
            if data.get(key) is None:
                data[key] = 0
        return data

    @property
    def is_subscription_invoice(self) -> bool:
        return bool(self.subscription)


class SubscriptionObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    customer: Optional[str] = None
    status: Optional[str] = None
    price_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _canonicalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data["customer"] = _object_id(data.get("customer"))
        data["price_id"] = _object_id(_nested_get(data, "items", "data", 0, "price"))
        return data


EventObject = Union[CheckoutSessionObject, InvoiceObject, SubscriptionObject]

OBJECT_MODELS: dict[str, type[BaseModel]] = {
    CHECKOUT_SESSION_COMPLETED: CheckoutSessionObject,
    INVOICE_PAYMENT_SUCCEEDED: InvoiceObject,
    INVOICE_PAYMENT_FAILED: InvoiceObject,
    SUBSCRIPTION_CREATED: SubscriptionObject,
    SUBSCRIPTION_UPDATED: SubscriptionObject,
    SUBSCRIPTION_DELETED: SubscriptionObject,
}


class WebhookEvent(BaseModel):
    """A verified provider event.

    ``object`` holds the typed payload for the event kinds the ledger handles
    and is ``None`` for everything else. ``payload`` keeps the verified JSON so
    an unapplied event can be parked and re-dispatched later.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    created: Optional[int] = None
    livemode: bool = False
    object: Optional[EventObject] = None
    payload: dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "WebhookEvent":
        """Validate a decoded event envelope (raises ``pydantic.ValidationError``)."""
        event_type = str(payload.get("type") or "")
        model = OBJECT_MODELS.get(event_type)
        typed_object = None
        if model is not None:
            typed_object = model.model_validate(_nested_get(payload, "data", "object") or {})
        return cls.model_validate(
            {
                "id": payload.get("id"),
                "type": event_type,
                "created": payload.get("created"),
                "livemode": bool(payload.get("livemode", False)),
                "object": typed_object,
                "payload": payload,
            }
        )
