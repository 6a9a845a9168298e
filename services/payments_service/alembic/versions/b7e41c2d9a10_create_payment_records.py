"""create_payment_records

Revision ID: b7e41c2d9a10
Revises:
Create Date: 2026-09-28 10:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "b7e41c2d9a10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    "payment_type_enum": (
        "full_payment",
        "installments",
        "cash",
        "terminal",
        "e_transfer",
    ),
    "pricing_tier_enum": ("early_bird", "regular"),
    "record_status_enum": ("pending", "in_progress", "completed"),
    "installment_status_enum": ("pending", "succeeded", "failed", "not_applicable"),
    "payment_audit_action_enum": ("reverted",),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    """Upgrade schema - league reference tables and payment records."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # League reference tables
    op.create_table(
        "cities",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("region", sa.String(length=120), nullable=True),
        sa.Column("etransfer_email", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_cities"),
    )
    op.create_index("ix_cities_name", "cities", ["name"])

    op.create_table(
        "divisions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("season", sa.String(length=64), nullable=True),
        sa.Column("city_id", sa.Uuid(), nullable=True),
        sa.Column("early_bird_price_cents", sa.Integer(), nullable=True),
        sa.Column("regular_price_cents", sa.Integer(), nullable=False),
        sa.Column("early_bird_open", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["city_id"],
            ["cities.id"],
            name="fk_divisions_city_id_cities",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_divisions"),
    )
    op.create_index("ix_divisions_city_id", "divisions", ["city_id"])

    op.create_table(
        "teams",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("division_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["division_id"],
            ["divisions.id"],
            name="fk_teams_division_id_divisions",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_teams"),
    )
    op.create_index("ix_teams_division_id", "teams", ["division_id"])

    op.create_table(
        "players",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("division_id", sa.Uuid(), nullable=True),
        sa.Column("team_id", sa.Uuid(), nullable=True),
        sa.Column("is_team_captain", sa.Boolean(), nullable=False),
        sa.Column("is_free_agent", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["division_id"],
            ["divisions.id"],
            name="fk_players_division_id_divisions",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["team_id"],
            ["teams.id"],
            name="fk_players_team_id_teams",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_players"),
    )
    op.create_index("ix_players_email", "players", ["email"])
    op.create_index("ix_players_user_id", "players", ["user_id"])
    op.create_index("ix_players_division_id", "players", ["division_id"])
    op.create_index("ix_players_team_id", "players", ["team_id"])

    # Payment records
    op.create_table(
        "payment_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("player_id", sa.Uuid(), nullable=False),
        sa.Column("division_id", sa.Uuid(), nullable=False),
        sa.Column("payment_type", _enum("payment_type_enum"), nullable=False),
        sa.Column("pricing_tier", _enum("pricing_tier_enum"), nullable=False),
        sa.Column("status", _enum("record_status_enum"), nullable=False),
        sa.Column("original_price_cents", sa.Integer(), nullable=False),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False),
        sa.Column("processor_ref", sa.String(length=128), nullable=True),
        sa.Column("payment_link", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "original_price_cents > 0",
            name="ck_payment_records_original_price_positive",
        ),
        sa.CheckConstraint(
            "amount_paid_cents >= 0",
            name="ck_payment_records_amount_paid_non_negative",
        ),
        sa.CheckConstraint(
            "amount_paid_cents <= original_price_cents",
            name="ck_payment_records_amount_paid_within_price",
        ),
        sa.ForeignKeyConstraint(
            ["player_id"],
            ["players.id"],
            name="fk_payment_records_player_id_players",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["division_id"],
            ["divisions.id"],
            name="fk_payment_records_division_id_divisions",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_payment_records"),
        sa.UniqueConstraint(
            "player_id", "division_id", name="uq_payment_records_player_division"
        ),
    )
    op.create_index("ix_payment_records_player_id", "payment_records", ["player_id"])
    op.create_index(
        "ix_payment_records_division_id", "payment_records", ["division_id"]
    )
    op.create_index("ix_payment_records_status", "payment_records", ["status"])
    op.create_index(
        "ix_payment_records_processor_ref", "payment_records", ["processor_ref"]
    )
    op.create_index("ix_payment_records_created_at", "payment_records", ["created_at"])

    op.create_table(
        "installment_plans",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("record_id", sa.Uuid(), nullable=False),
        sa.Column("installment_count", sa.Integer(), nullable=False),
        sa.Column("subscription_ref", sa.String(length=128), nullable=True),
        sa.Column("payment_method_ref", sa.String(length=128), nullable=True),
        sa.Column("remaining_balance_cents", sa.Integer(), nullable=False),
        sa.Column("next_payment_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "installment_count >= 1",
            name="ck_installment_plans_installment_count_positive",
        ),
        sa.ForeignKeyConstraint(
            ["record_id"],
            ["payment_records.id"],
            name="fk_installment_plans_record_id_payment_records",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_installment_plans"),
        sa.UniqueConstraint("record_id", name="uq_installment_plans_record_id"),
    )

    op.create_table(
        "subscription_payments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("plan_id", sa.Uuid(), nullable=False),
        sa.Column("payment_number", sa.Integer(), nullable=False),
        sa.Column("status", _enum("installment_status_enum"), nullable=False),
        sa.Column("amount_due_cents", sa.Integer(), nullable=False),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("attempt_count", sa.Integer(), nullable=False),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("invoice_ref", sa.String(length=128), nullable=True),
        sa.Column("payment_link", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "payment_number >= 1",
            name="ck_subscription_payments_payment_number_positive",
        ),
        sa.ForeignKeyConstraint(
            ["plan_id"],
            ["installment_plans.id"],
            name="fk_subscription_payments_plan_id_installment_plans",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_subscription_payments"),
        sa.UniqueConstraint(
            "plan_id", "payment_number", name="uq_subscription_payments_plan_number"
        ),
    )
    op.create_index(
        "ix_subscription_payments_plan_id", "subscription_payments", ["plan_id"]
    )

    op.create_table(
        "etransfer_payments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("record_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("transaction_ref", sa.String(length=64), nullable=False),
        sa.Column("reference_number", sa.String(length=128), nullable=True),
        sa.Column("sender_name", sa.String(length=200), nullable=True),
        sa.Column("sender_email", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("received_by", sa.String(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "amount_cents > 0", name="ck_etransfer_payments_amount_positive"
        ),
        sa.ForeignKeyConstraint(
            ["record_id"],
            ["payment_records.id"],
            name="fk_etransfer_payments_record_id_payment_records",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_etransfer_payments"),
    )
    op.create_index(
        "ix_etransfer_payments_record_id", "etransfer_payments", ["record_id"]
    )
    op.create_index(
        "ix_etransfer_payments_transaction_ref",
        "etransfer_payments",
        ["transaction_ref"],
    )

    op.create_table(
        "manual_receipts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("record_id", sa.Uuid(), nullable=False),
        sa.Column("channel", _enum("payment_type_enum"), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("processor_ref", sa.String(length=128), nullable=True),
        sa.Column("card_brand", sa.String(length=32), nullable=True),
        sa.Column("card_last4", sa.String(length=4), nullable=True),
        sa.Column("reader_id", sa.String(length=128), nullable=True),
        sa.Column("received_by", sa.String(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "amount_cents > 0", name="ck_manual_receipts_amount_positive"
        ),
        sa.ForeignKeyConstraint(
            ["record_id"],
            ["payment_records.id"],
            name="fk_manual_receipts_record_id_payment_records",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_manual_receipts"),
        sa.UniqueConstraint("record_id", name="uq_manual_receipts_record_id"),
    )

    op.create_table(
        "payment_audit_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("action", _enum("payment_audit_action_enum"), nullable=False),
        sa.Column("record_id", sa.Uuid(), nullable=False),
        sa.Column("player_id", sa.Uuid(), nullable=False),
        sa.Column("division_id", sa.Uuid(), nullable=False),
        sa.Column("payment_type", _enum("payment_type_enum"), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("snapshot", postgresql.JSONB(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("performed_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_payment_audit_logs"),
    )
    op.create_index(
        "ix_payment_audit_logs_record_id", "payment_audit_logs", ["record_id"]
    )
    op.create_index(
        "ix_payment_audit_logs_player_id", "payment_audit_logs", ["player_id"]
    )
    op.create_index(
        "ix_payment_audit_logs_division_id", "payment_audit_logs", ["division_id"]
    )


def downgrade() -> None:
    """Downgrade schema - drop payment records and league reference tables."""
    for table in (
        "payment_audit_logs",
        "manual_receipts",
        "etransfer_payments",
        "subscription_payments",
        "installment_plans",
        "payment_records",
        "players",
        "teams",
        "divisions",
        "cities",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
