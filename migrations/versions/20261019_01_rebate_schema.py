"""Transactions, reference tables and calculation results."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op

revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on: Iterable[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _rates() -> list[sa.Column]:
    return [sa.Column("monthly_rates", sa.JSON()), sa.Column("yearly_rates", sa.JSON())]


def _drop_enum(name: str) -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))


def upgrade() -> None:  # noqa: D401
    """Create the rebate tables."""

    rate_period = sa.Enum("MONTHLY", "YEARLY", name="rate_period")
    special_case_type = sa.Enum("REGION_COUNTRY", "PROVIDER_OVERRIDE", name="special_case_type")
    calculation_type = sa.Enum(
        "REGION_COUNTRY", "SPECIAL_CASE", "CARD_NETWORK", "PARTNER_PAYMENT", name="calculation_type"
    )

    rate_period.create(op.get_bind(), checkfirst=True)
    special_case_type.create(op.get_bind(), checkfirst=True)
    calculation_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "transactions",
        sa.Column("transaction_id", sa.String(length=64), primary_key=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("provider_code", sa.String(length=64), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("amount_eur", sa.Numeric(18, 6)),
        sa.Column("fx_rate", sa.Numeric(18, 8)),
        sa.Column("transaction_date", sa.Date()),
        sa.Column("card_type", sa.String(length=64)),
        sa.Column("card_number", sa.String(length=32)),
        sa.Column("transaction_type", sa.String(length=64)),
        sa.Column("funding_account_name", sa.String(length=255)),
        sa.Column("interchange_amount", sa.Numeric(18, 2)),
        sa.Column("interchange_percentage", sa.Numeric(9, 4)),
        sa.Column("merchant_name", sa.String(length=255)),
        sa.Column("transaction_merchant_name", sa.String(length=255)),
        sa.Column("merchant_country", sa.String(length=64)),
        sa.Column("merchant_category_code", sa.Integer()),
        sa.Column("bin_number", sa.BigInteger()),
        sa.Column("region", sa.String(length=64)),
        sa.Column("region_mc", sa.String(length=64)),
        sa.Column("pk_reference", sa.String(length=128)),
        sa.Column("rebate_level", sa.Integer()),
        *_timestamps(),
    )
    op.create_index("ix_transactions_sequence", "transactions", ["sequence"])
    op.create_index("ix_transactions_provider_product", "transactions", ["provider_code", "product_name"])

    op.create_table(
        "card_network_rates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("period", rate_period, nullable=False),
        sa.Column("provider_code", sa.String(length=64), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("account_name", sa.String(length=255)),
        sa.Column("master_account", sa.String(length=255)),
        *_rates(),
        *_timestamps(),
    )
    op.create_index(
        "ix_card_network_rates_key", "card_network_rates", ["period", "provider_code", "product_name"]
    )

    op.create_table(
        "partner_payment_rates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("period", rate_period, nullable=False),
        sa.Column("provider_code", sa.String(length=64), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("airline", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("bin_pattern", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("master_account", sa.String(length=255)),
        *_rates(),
        *_timestamps(),
    )
    op.create_index(
        "ix_partner_payment_rates_key", "partner_payment_rates", ["period", "provider_code", "product_name"]
    )

    op.create_table(
        "special_case_rules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider_code", sa.String(length=64), nullable=False),
        sa.Column("rule_type", special_case_type, nullable=False),
        sa.Column("conditions", sa.JSON()),
        *_rates(),
        *_timestamps(),
    )
    op.create_index("ix_special_case_rules_provider_code", "special_case_rules", ["provider_code"])

    op.create_table(
        "airlines_mcc",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("airline_name", sa.String(length=255), nullable=False),
        sa.Column("mcc_code", sa.String(length=16), nullable=False),
        sa.Column("airline_code", sa.String(length=16)),
        *_timestamps(),
    )
    op.create_index("ix_airlines_mcc_mcc_code", "airlines_mcc", ["mcc_code"])

    op.create_table(
        "calculation_runs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("period", rate_period, nullable=False),
        sa.Column("reporting_period", sa.String(length=6)),
        sa.Column("transactions_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rebate_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unmatched_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ambiguous_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unmatched", sa.JSON()),
        sa.Column("errors", sa.JSON()),
        *_timestamps(),
    )

    op.create_table(
        "calculated_rebates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("run_id", sa.String(length=36), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.String(length=64), nullable=False),
        sa.Column("provider_code", sa.String(length=64), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("rebate_level", sa.Integer(), nullable=False),
        sa.Column("rebate_percentage", sa.Numeric(12, 6), nullable=False),
        sa.Column("rebate_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("rebate_amount_eur", sa.Numeric(18, 2)),
        sa.Column("calculation_type", calculation_type, nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.ForeignKeyConstraint(["run_id"], ["calculation_runs.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_calculated_rebates_run_id", "calculated_rebates", ["run_id"])
    op.create_index("ix_calculated_rebates_transaction_id", "calculated_rebates", ["transaction_id"])


def downgrade() -> None:  # noqa: D401
    """Drop the rebate tables."""

    op.drop_index("ix_calculated_rebates_transaction_id", table_name="calculated_rebates")
    op.drop_index("ix_calculated_rebates_run_id", table_name="calculated_rebates")
    op.drop_table("calculated_rebates")
    op.drop_table("calculation_runs")
    op.drop_index("ix_airlines_mcc_mcc_code", table_name="airlines_mcc")
    op.drop_table("airlines_mcc")
    op.drop_index("ix_special_case_rules_provider_code", table_name="special_case_rules")
    op.drop_table("special_case_rules")
    op.drop_index("ix_partner_payment_rates_key", table_name="partner_payment_rates")
    op.drop_table("partner_payment_rates")
    op.drop_index("ix_card_network_rates_key", table_name="card_network_rates")
    op.drop_table("card_network_rates")
    op.drop_index("ix_transactions_provider_product", table_name="transactions")
    op.drop_index("ix_transactions_sequence", table_name="transactions")
    op.drop_table("transactions")

    _drop_enum("calculation_type")
    _drop_enum("special_case_type")
    _drop_enum("rate_period")
