import os
# Override DATABASE_URL before any app imports to avoid PostgreSQL driver requirement
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
# Keep external integrations disabled by default for unit/API tests. Individual
# tests can opt-in by monkeypatching settings.
os.environ["MVP_DISABLE_STRIPE"] = "true"
os.environ["MVP_DISABLE_CELERY"] = "true"
os.environ["STRIPE_WEBHOOK_SECRET"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["RENEWAL_CREDIT_MODE"] = "reset"

import hashlib
import hmac
import itertools
import json
import time
import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from radorder_billing.platform.config import PurgatoryPolicy
from radorder_billing.platform.database import Base, get_db
from radorder_billing.main import app
from radorder_billing.models.organization import Organization, OrganizationStatus, OrganizationType
from radorder_billing.models.organization_relationship import OrganizationRelationship, RelationshipStatus
from radorder_billing.models.user import User
from radorder_billing.schemas.billing_event import WebhookEvent
from radorder_billing.services.billing_catalog import BillingCatalog
from radorder_billing.domains.billing_webhooks.dispatcher import BillingWebhookDispatcher
from radorder_billing.domains.billing_webhooks.webhook_routes import get_billing_dispatcher, get_stripe_service
from radorder_billing.components.integrations.stripe.service import StripeService

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_WEBHOOK_SECRET = "whsec_test_secret"
FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

# Enable foreign key support for SQLite
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    yield db
    db.close()
    Base.metadata.drop_all(bind=engine)


# ---------------------------------------------------------------------------
# Billing collaborators
# ---------------------------------------------------------------------------

class RecordingNotifier:
    """Stand-in for BillingNotifier that records what would have been sent."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def notify(self, db, *, organization_id, organization_name, notices):
        notices = list(notices)
        self.calls.append(
            {
                "organization_id": organization_id,
                "organization_name": organization_name,
                "kinds": [n.kind.value for n in notices],
                "notices": notices,
            }
        )
        if self.fail:
            raise RuntimeError("email provider unavailable")
        return len(notices)


def make_catalog() -> BillingCatalog:
    return BillingCatalog(
        bundle_credits={"price_credits_small": 100, "price_credits_medium": 500, "price_credits_large": 1000},
        price_tiers={"price_tier_1": "tier_1", "price_tier_2": "tier_2", "price_tier_3": "tier_3"},
        tier_allotments={"tier_1": 500, "tier_2": 1500, "tier_3": 5000},
        default_bundle_credits=100,
        default_tier="tier_1",
        default_tier_allotment=100,
    )


def make_policy(**overrides) -> PurgatoryPolicy:
    values = dict(
        failure_window_days=30,
        failure_threshold=2,
        max_attempts=2,
        renewal_credit_mode="reset",
        credit_consuming_org_types=frozenset({OrganizationType.REFERRING_PRACTICE.value}),
    )
    values.update(overrides)
    return PurgatoryPolicy(**values)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def catalog():
    return make_catalog()


@pytest.fixture
def policy():
    return make_policy()


@pytest.fixture
def clock():
    """Mutable clock: tests move ``clock.now`` to simulate elapsed time."""

    class _Clock:
        now = FIXED_NOW

        def __call__(self):
            return self.now

    return _Clock()


@pytest.fixture
def dispatcher(catalog, notifier, policy, clock):
    return BillingWebhookDispatcher(catalog, notifier, policy, clock=clock, dead_letter_after=3)


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------

_counter = itertools.count(1)


def _unique_id() -> str:
    return f"{next(_counter)}{uuid.uuid4().hex[:8]}"


@pytest.fixture
def make_org(db):
    def _make(
        name=None,
        *,
        type=OrganizationType.REFERRING_PRACTICE.value,
        billing_id="auto",
        credit_balance=0,
        status=OrganizationStatus.ACTIVE.value,
        subscription_tier=None,
        admins=("admin",),
    ):
        suffix = _unique_id()
        org = Organization(
            name=name or f"Org {suffix}",
            type=type,
            billing_id=f"cus_{suffix}" if billing_id == "auto" else billing_id,
            credit_balance=credit_balance,
            status=status,
            subscription_tier=subscription_tier,
        )
        db.add(org)
        db.flush()
        for local in admins:
            db.add(
                User(
                    email=f"{local}-{suffix}@example.com",
                    role="admin_referring" if type == OrganizationType.REFERRING_PRACTICE.value else "admin_radiology",
                    organization_id=org.id,
                )
            )
        db.commit()
        db.refresh(org)
        return org

    return _make


@pytest.fixture
def link_orgs(db):
    def _link(org, other, status=RelationshipStatus.ACTIVE.value):
        rel = OrganizationRelationship(organization_id=org.id, related_organization_id=other.id, status=status)
        db.add(rel)
        db.commit()
        db.refresh(rel)
        return rel

    return _link


def stripe_payload(event_type: str, obj: dict, event_id: str | None = None) -> dict:
    return {
        "id": event_id or f"evt_{_unique_id()}",
        "object": "event",
        "type": event_type,
        "created": 1767225600,
        "livemode": False,
        "data": {"object": obj},
    }


def stripe_event(event_type: str, obj: dict, event_id: str | None = None) -> WebhookEvent:
    return WebhookEvent.from_payload(stripe_payload(event_type, obj, event_id))


def checkout_session(org=None, *, customer=None, bundle="price_credits_medium", amount_total=4900, org_id=None):
    metadata = {"credit_bundle_price_id": bundle}
    if org_id is not None:
        metadata["radorderpad_org_id"] = str(org_id)
    elif org is not None:
        metadata["radorderpad_org_id"] = str(org.id)
    return {
        "id": f"cs_{_unique_id()}",
        "object": "checkout.session",
        "customer": customer,
        "amount_total": amount_total,
        "currency": "usd",
        "metadata": metadata,
    }


def invoice(org, *, subscription="sub_123", attempt_count=1, amount=9900, price="price_tier_1", number=None):
    return {
        "id": f"in_{_unique_id()}",
        "object": "invoice",
        "number": number or "INV-0001",
        "customer": org.billing_id,
        "subscription": subscription,
        "amount_paid": amount,
        "amount_due": amount,
        "currency": "usd",
        "attempt_count": attempt_count,
        "lines": {"data": [{"price": {"id": price}}]},
    }


def subscription(org, *, status="active", price="price_tier_2", sub_id="sub_123"):
    return {
        "id": sub_id,
        "object": "subscription",
        "customer": org.billing_id,
        "status": status,
        "items": {"data": [{"price": {"id": price}}]},
    }


def sign_payload(body: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe does."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode("utf-8") + body
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def encode_payload(payload: dict) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


@pytest.fixture(scope="function")
def client(db, dispatcher, monkeypatch):
    from radorder_billing.domains.billing_webhooks import webhook_routes

    monkeypatch.setattr(webhook_routes.settings, "MVP_DISABLE_STRIPE", False)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_service] = lambda: StripeService(TEST_WEBHOOK_SECRET)
    app.dependency_overrides[get_billing_dispatcher] = lambda: dispatcher
    Base.metadata.create_all(bind=engine)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
