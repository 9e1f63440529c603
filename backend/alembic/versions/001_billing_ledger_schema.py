"""billing ledger schema: organizations, users, billing events, purgatory, relationships, dead letters

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False, server_default="referring_practice"),
        sa.Column("billing_id", sa.String(), nullable=True),
        sa.Column("credit_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("subscription_tier", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("credit_balance >= 0", name="ck_organizations_credit_balance_non_negative"),
    )
    op.create_index(op.f("ix_organizations_id"), "organizations", ["id"], unique=False)
    op.create_index(op.f("ix_organizations_billing_id"), "organizations", ["billing_id"], unique=True)
    op.create_index(op.f("ix_organizations_status"), "organizations", ["status"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="physician"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_organization_id"), "users", ["organization_id"], unique=False)

    op.create_table(
        "billing_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=True),
        sa.Column("stripe_event_id", sa.String(), nullable=False),
        sa.Column("stripe_invoice_id", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("credits_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("status_after", sa.String(), nullable=False),
        sa.Column("tier_after", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f("ix_billing_events_id"), "billing_events", ["id"], unique=False)
    op.create_index(op.f("ix_billing_events_organization_id"), "billing_events", ["organization_id"], unique=False)
    op.create_index(op.f("ix_billing_events_event_type"), "billing_events", ["event_type"], unique=False)
    op.create_index(op.f("ix_billing_events_stripe_event_id"), "billing_events", ["stripe_event_id"], unique=True)
    op.create_index(op.f("ix_billing_events_stripe_invoice_id"), "billing_events", ["stripe_invoice_id"], unique=False)

    op.create_table(
        "purgatory_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("triggered_by", sa.String(), nullable=False, server_default="stripe_webhook"),
        sa.Column("stripe_event_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f("ix_purgatory_events_id"), "purgatory_events", ["id"], unique=False)
    op.create_index(
        op.f("ix_purgatory_events_organization_id"), "purgatory_events", ["organization_id"], unique=False
    )
    op.create_index(
        "uq_purgatory_events_one_active_per_org",
        "purgatory_events",
        ["organization_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "organization_relationships",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("related_organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("organization_id", "related_organization_id", name="uq_organization_relationships_pair"),
    )
    op.create_index(op.f("ix_organization_relationships_id"), "organization_relationships", ["id"], unique=False)
    op.create_index(
        op.f("ix_organization_relationships_organization_id"),
        "organization_relationships",
        ["organization_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_organization_relationships_related_organization_id"),
        "organization_relationships",
        ["related_organization_id"],
        unique=False,
    )

    op.create_table(
        "billing_webhook_dead_letters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("stripe_event_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("first_failed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_failed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f("ix_billing_webhook_dead_letters_id"), "billing_webhook_dead_letters", ["id"], unique=False)
    op.create_index(
        op.f("ix_billing_webhook_dead_letters_stripe_event_id"),
        "billing_webhook_dead_letters",
        ["stripe_event_id"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_billing_webhook_dead_letters_stripe_event_id"), table_name="billing_webhook_dead_letters")
    op.drop_index(op.f("ix_billing_webhook_dead_letters_id"), table_name="billing_webhook_dead_letters")
    op.drop_table("billing_webhook_dead_letters")

    op.drop_index(
        op.f("ix_organization_relationships_related_organization_id"), table_name="organization_relationships"
    )
    op.drop_index(op.f("ix_organization_relationships_organization_id"), table_name="organization_relationships")
    op.drop_index(op.f("ix_organization_relationships_id"), table_name="organization_relationships")
    op.drop_table("organization_relationships")

    op.drop_index("uq_purgatory_events_one_active_per_org", table_name="purgatory_events")
    op.drop_index(op.f("ix_purgatory_events_organization_id"), table_name="purgatory_events")
    op.drop_index(op.f("ix_purgatory_events_id"), table_name="purgatory_events")
    op.drop_table("purgatory_events")

    op.drop_index(op.f("ix_billing_events_stripe_invoice_id"), table_name="billing_events")
    op.drop_index(op.f("ix_billing_events_stripe_event_id"), table_name="billing_events")
    op.drop_index(op.f("ix_billing_events_event_type"), table_name="billing_events")
    op.drop_index(op.f("ix_billing_events_organization_id"), table_name="billing_events")
    op.drop_index(op.f("ix_billing_events_id"), table_name="billing_events")
    op.drop_table("billing_events")

    op.drop_index(op.f("ix_users_organization_id"), table_name="users")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_index(op.f("ix_users_id"), table_name="users")
    op.drop_table("users")

    op.drop_index(op.f("ix_organizations_status"), table_name="organizations")
    op.drop_index(op.f("ix_organizations_billing_id"), table_name="organizations")
    op.drop_index(op.f("ix_organizations_id"), table_name="organizations")
    op.drop_table("organizations")
