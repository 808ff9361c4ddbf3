"""initial capital ledger schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


MONEY = sa.Numeric(20, 2)
SHARES = sa.Numeric(20, 6)
RATE = sa.Numeric(10, 6)


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), primary_key=True, nullable=False)


def _created_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=True),
    ]


def _audit_columns() -> list[sa.Column]:
    return [
        *_created_columns(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_by", sa.String(length=128), nullable=True),
    ]


def _fund_columns() -> list[sa.Column]:
    return [
        sa.Column("fund_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("access_level", sa.String(length=32), nullable=False, server_default="internal", index=True),
    ]


def _fk(target: str, nullable: bool = False, **kw) -> sa.Column:
    name = kw.pop("name")
    return sa.Column(name, sa.Uuid(), sa.ForeignKey(target, ondelete="RESTRICT"), nullable=nullable, **kw)


def upgrade() -> None:
    # --- Core
    op.create_table(
        "funds",
        _id(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("base_currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column(
            "nav_frequency",
            sa.Enum("monthly", "quarterly", "annual", name="nav_frequency_enum"),
            nullable=False,
            server_default="monthly",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
    )
    op.create_index("ix_funds_name", "funds", ["name"], unique=True)

    op.create_table(
        "users",
        _id(),
        sa.Column("external_id", sa.String(length=200), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("display_name", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
    )
    op.create_index("ix_users_external_id", "users", ["external_id"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "user_fund_roles",
        _id(),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("fund_id", sa.Uuid(), sa.ForeignKey("funds.id", ondelete="CASCADE"), nullable=False),
        sa.Column("access_level", sa.String(length=32), nullable=False, server_default="internal"),
        sa.Column("role", sa.String(length=32), nullable=False),
        *_audit_columns(),
        sa.UniqueConstraint("user_id", "fund_id", "role", name="uq_user_fund_role"),
    )
    op.create_index("ix_user_fund_roles_user_id", "user_fund_roles", ["user_id"])
    op.create_index("ix_user_fund_roles_fund_id", "user_fund_roles", ["fund_id"])
    op.create_index("ix_user_fund_roles_role", "user_fund_roles", ["role"])

    op.create_table(
        "audit_events",
        _id(),
        *_fund_columns(),
        sa.Column("actor_id", sa.String(length=200), nullable=False, index=True),
        sa.Column("actor_roles", sa.JSON(), nullable=False),
        sa.Column("action", sa.String(length=200), nullable=False, index=True),
        sa.Column("entity_type", sa.String(length=100), nullable=False, index=True),
        sa.Column("entity_id", sa.String(length=200), nullable=False, index=True),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=False, index=True),
        *_audit_columns(),
    )
    op.create_index("ix_audit_events_fund_entity", "audit_events", ["fund_id", "entity_type", "entity_id"])

    # --- Ledger
    op.create_table(
        "share_classes",
        _id(),
        *_fund_columns(),
        sa.Column("class_code", sa.String(length=32), nullable=False),
        sa.Column("class_name", sa.String(length=200), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("management_fee_rate", RATE, nullable=False, server_default="0"),
        sa.Column("performance_fee_rate", RATE, nullable=False, server_default="0"),
        sa.Column("hurdle_rate", RATE, nullable=False, server_default="0"),
        sa.Column("high_water_mark", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("share_price_precision", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("status", sa.Enum("ACTIVE", "INACTIVE", name="share_class_status_enum"), nullable=False),
        *_audit_columns(),
        sa.UniqueConstraint("fund_id", "class_code", name="uq_share_classes_fund_code"),
    )

    op.create_table(
        "capital_accounts",
        _id(),
        *_fund_columns(),
        _fk("share_classes.id", name="share_class_id", index=True),
        sa.Column("investor_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("account_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("commitment_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("inception_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "CLOSED", name="capital_account_status_enum"),
            nullable=False,
            index=True,
        ),
        *_audit_columns(),
        sa.UniqueConstraint("fund_id", "share_class_id", "investor_id", name="uq_capital_accounts_fund_class_investor"),
    )
    op.create_index("ix_capital_accounts_fund_status", "capital_accounts", ["fund_id", "status"])

    op.create_table(
        "capital_transactions",
        _id(),
        *_fund_columns(),
        _fk("capital_accounts.id", name="capital_account_id", index=True),
        sa.Column(
            "transaction_type",
            sa.Enum("CONTRIBUTION", "DISTRIBUTION", "FEE_DEBIT", name="capital_tx_type_enum"),
            nullable=False,
        ),
        sa.Column("transaction_date", sa.Date(), nullable=False, index=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("share_delta", SHARES, nullable=False, server_default="0"),
        sa.Column("reference", sa.String(length=200), nullable=True),
        sa.Column("description", sa.String(length=1000), nullable=True),
        *_created_columns(),
        sa.UniqueConstraint("capital_account_id", "sequence", name="uq_capital_transactions_account_sequence"),
    )
    op.create_index(
        "ix_capital_transactions_account_date", "capital_transactions", ["capital_account_id", "transaction_date"]
    )

    op.create_table(
        "nav_marks",
        _id(),
        *_fund_columns(),
        _fk("share_classes.id", nullable=True, name="share_class_id", index=True),
        sa.Column("calculation_date", sa.Date(), nullable=False, index=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("nav_per_share", SHARES, nullable=False),
        sa.Column("total_shares_outstanding", SHARES, nullable=False, server_default="0"),
        *_created_columns(),
        sa.UniqueConstraint(
            "fund_id", "share_class_id", "calculation_date", "version", name="uq_nav_marks_scope_date_version"
        ),
    )
    op.create_index("ix_nav_marks_fund_date", "nav_marks", ["fund_id", "calculation_date"])

    # --- Fees
    op.create_table(
        "fee_schedules",
        _id(),
        *_fund_columns(),
        _fk("share_classes.id", nullable=True, name="share_class_id", index=True),
        sa.Column("fee_name", sa.String(length=200), nullable=False),
        sa.Column(
            "fee_type",
            sa.Enum("MANAGEMENT", "PERFORMANCE", "ADMIN", "CUSTODIAN", "OTHER", name="fee_type_enum"),
            nullable=False,
        ),
        sa.Column(
            "calculation_method",
            sa.Enum(
                "PCT_OF_NAV",
                "PCT_OF_COMMITTED",
                "PCT_OF_INVESTED",
                "PCT_OF_GAINS",
                name="fee_calculation_method_enum",
            ),
            nullable=False,
        ),
        sa.Column("annual_rate", RATE, nullable=False),
        sa.Column("frequency", sa.Enum("MONTHLY", "QUARTERLY", "ANNUAL", name="fee_frequency_enum"), nullable=False),
        sa.Column("hurdle_rate", RATE, nullable=True),
        sa.Column("high_water_mark", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "INACTIVE", name="fee_schedule_status_enum"),
            nullable=False,
            index=True,
        ),
        *_audit_columns(),
    )
    op.create_index("ix_fee_schedules_fund_status", "fee_schedules", ["fund_id", "status"])

    op.create_table(
        "fee_transactions",
        _id(),
        *_fund_columns(),
        _fk("fee_schedules.id", name="fee_schedule_id", index=True),
        _fk("capital_accounts.id", name="capital_account_id", index=True),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False, index=True),
        sa.Column("base_amount", MONEY, nullable=False),
        sa.Column("rate_applied", RATE, nullable=False),
        sa.Column("fee_amount", MONEY, nullable=False),
        sa.Column("paid_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("nav_per_share", SHARES, nullable=True),
        sa.Column("high_water_mark", SHARES, nullable=True),
        sa.Column("calculation_details", sa.JSON(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("CALCULATED", "INVOICED", "PAID", "WAIVED", name="fee_transaction_status_enum"),
            nullable=False,
            index=True,
        ),
        sa.Column("invoiced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_date", sa.Date(), nullable=True),
        _fk("capital_transactions.id", nullable=True, name="fee_debit_transaction_id"),
        *_audit_columns(),
        sa.UniqueConstraint(
            "fee_schedule_id",
            "capital_account_id",
            "period_end",
            name="uq_fee_transactions_schedule_account_period",
        ),
    )
    op.create_index("ix_fee_transactions_fund_period", "fee_transactions", ["fund_id", "period_end"])

    # --- Carried interest
    op.create_table(
        "waterfall_structures",
        _id(),
        *_fund_columns(),
        sa.Column("structure_name", sa.String(length=200), nullable=False),
        sa.Column(
            "waterfall_type",
            sa.Enum("EUROPEAN", "AMERICAN", "HYBRID", name="waterfall_type_enum"),
            nullable=False,
        ),
        sa.Column("carry_rate", RATE, nullable=False),
        sa.Column("hurdle_rate", RATE, nullable=True),
        sa.Column("catch_up_rate", RATE, nullable=True),
        sa.Column("tiers", sa.JSON(), nullable=True),
        sa.Column("clawback_provision", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("status", sa.Enum("ACTIVE", "INACTIVE", name="waterfall_status_enum"), nullable=False),
        *_audit_columns(),
    )

    op.create_table(
        "waterfall_calculations",
        _id(),
        *_fund_columns(),
        _fk("waterfall_structures.id", name="waterfall_structure_id", index=True),
        sa.Column("calculation_date", sa.Date(), nullable=False, index=True),
        sa.Column("total_contributions", MONEY, nullable=False),
        sa.Column("total_distributions", MONEY, nullable=False),
        sa.Column("current_nav", MONEY, nullable=False),
        sa.Column("lp_allocation", MONEY, nullable=False),
        sa.Column("gp_allocation", MONEY, nullable=False),
        sa.Column("tier_breakdown", sa.JSON(), nullable=True),
        *_created_columns(),
        sa.UniqueConstraint(
            "waterfall_structure_id", "calculation_date", name="uq_waterfall_calculations_structure_date"
        ),
    )

    op.create_table(
        "carried_interest_accounts",
        _id(),
        *_fund_columns(),
        _fk("waterfall_structures.id", name="waterfall_structure_id", index=True),
        sa.Column("gp_entity_name", sa.String(length=200), nullable=False),
        sa.Column("total_carry_accrued", MONEY, nullable=False, server_default="0"),
        sa.Column("total_carry_distributed", MONEY, nullable=False, server_default="0"),
        sa.Column("clawback_reserve", MONEY, nullable=False, server_default="0"),
        sa.Column("high_water_mark", MONEY, nullable=False, server_default="0"),
        sa.Column("last_calculation_date", sa.Date(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "SUSPENDED", "TERMINATED", name="carry_account_status_enum"),
            nullable=False,
            index=True,
        ),
        *_audit_columns(),
        sa.UniqueConstraint("fund_id", "gp_entity_name", name="uq_carry_accounts_fund_gp"),
    )

    op.create_table(
        "carry_accruals",
        _id(),
        *_fund_columns(),
        _fk("carried_interest_accounts.id", name="carry_account_id", index=True),
        _fk("waterfall_calculations.id", name="waterfall_calculation_id"),
        sa.Column("calculation_date", sa.Date(), nullable=False),
        sa.Column("earned_to_date", MONEY, nullable=False),
        sa.Column("delta_accrued", MONEY, nullable=False),
        sa.Column("high_water_mark_before", MONEY, nullable=False),
        sa.Column("high_water_mark_after", MONEY, nullable=False),
        *_created_columns(),
        sa.UniqueConstraint("carry_account_id", "waterfall_calculation_id", name="uq_carry_accruals_account_calc"),
    )

    op.create_table(
        "clawback_provisions",
        _id(),
        *_fund_columns(),
        _fk("carried_interest_accounts.id", name="carry_account_id", index=True),
        _fk("waterfall_calculations.id", name="waterfall_calculation_id"),
        sa.Column("calculation_date", sa.Date(), nullable=False),
        sa.Column("total_carry_distributed", MONEY, nullable=False),
        sa.Column("total_carry_earned", MONEY, nullable=False),
        sa.Column("clawback_amount", MONEY, nullable=False),
        sa.Column("amount_paid", MONEY, nullable=False, server_default="0"),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("calculation_details", sa.JSON(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("CALCULATED", "NOTIFIED", "PAID", "WAIVED", name="clawback_status_enum"),
            nullable=False,
            index=True,
        ),
        *_audit_columns(),
        sa.UniqueConstraint("carry_account_id", "calculation_date", name="uq_clawback_provisions_account_date"),
    )

    # --- Statements
    op.create_table(
        "investor_statements",
        _id(),
        *_fund_columns(),
        _fk("capital_accounts.id", name="capital_account_id", index=True),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False, index=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "statement_type",
            sa.Enum("MONTHLY", "QUARTERLY", "ANNUAL", "ON_DEMAND", name="statement_type_enum"),
            nullable=False,
        ),
        sa.Column("beginning_shares", SHARES, nullable=False),
        sa.Column("ending_shares", SHARES, nullable=False),
        sa.Column("beginning_nav_per_share", SHARES, nullable=True),
        sa.Column("ending_nav_per_share", SHARES, nullable=False),
        sa.Column("beginning_balance", MONEY, nullable=False),
        sa.Column("contributions", MONEY, nullable=False),
        sa.Column("distributions", MONEY, nullable=False),
        sa.Column("fees", MONEY, nullable=False),
        sa.Column("ending_balance", MONEY, nullable=False),
        sa.Column("return_amount", MONEY, nullable=False),
        sa.Column("return_percent", sa.Numeric(12, 4), nullable=False),
        sa.Column(
            "status",
            sa.Enum("DRAFT", "FINALIZED", "SENT", name="statement_status_enum"),
            nullable=False,
            index=True,
        ),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finalized_by", sa.String(length=128), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_by", sa.String(length=128), nullable=True),
        *_audit_columns(),
        sa.UniqueConstraint(
            "capital_account_id",
            "period_start",
            "period_end",
            "version",
            name="uq_investor_statements_account_period_version",
        ),
    )
    op.create_index("ix_investor_statements_fund_period", "investor_statements", ["fund_id", "period_end"])

    # --- Tax
    op.create_table(
        "tax_characterizations",
        _id(),
        *_fund_columns(),
        sa.Column("tax_year", sa.Integer(), nullable=False),
        sa.Column("ordinary_income_fraction", RATE, nullable=False, server_default="0"),
        sa.Column("qualified_dividends_fraction", RATE, nullable=False, server_default="0"),
        sa.Column("long_term_gains_fraction", RATE, nullable=False, server_default="0"),
        sa.Column("short_term_gains_fraction", RATE, nullable=False, server_default="0"),
        sa.Column("return_of_capital_fraction", RATE, nullable=False, server_default="0"),
        *_audit_columns(),
        sa.UniqueConstraint("fund_id", "tax_year", name="uq_tax_characterizations_fund_year"),
    )

    op.create_table(
        "tax_documents",
        _id(),
        *_fund_columns(),
        _fk("capital_accounts.id", name="capital_account_id", index=True),
        _fk("tax_characterizations.id", name="characterization_id"),
        sa.Column("tax_year", sa.Integer(), nullable=False, index=True),
        sa.Column(
            "document_type",
            sa.Enum("K1", "FORM_1099_DIV", "ANNUAL_STATEMENT", "OTHER", name="tax_document_type_enum"),
            nullable=False,
        ),
        sa.Column("total_distributions", MONEY, nullable=False),
        sa.Column("ordinary_income", MONEY, nullable=False),
        sa.Column("qualified_dividends", MONEY, nullable=False),
        sa.Column("long_term_gains", MONEY, nullable=False),
        sa.Column("short_term_gains", MONEY, nullable=False),
        sa.Column("return_of_capital", MONEY, nullable=False),
        sa.Column("status", sa.Enum("DRAFT", "FINALIZED", name="tax_document_status_enum"), nullable=False),
        *_audit_columns(),
        sa.UniqueConstraint("capital_account_id", "tax_year", name="uq_tax_documents_account_year"),
    )

    # --- Period close
    op.create_table(
        "period_close_runs",
        _id(),
        *_fund_columns(),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("RUNNING", "COMPLETED", "FAILED", name="period_close_status_enum"),
            nullable=False,
            index=True,
        ),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_by", sa.String(length=128), nullable=True),
        sa.Column("last_error", sa.String(length=2000), nullable=True),
        sa.Column("last_summary", sa.JSON(), nullable=True),
        *_audit_columns(),
        sa.UniqueConstraint("fund_id", "period_start", "period_end", name="uq_period_close_runs_fund_period"),
    )


def downgrade() -> None:
    for table in (
        "period_close_runs",
        "tax_documents",
        "tax_characterizations",
        "investor_statements",
        "clawback_provisions",
        "carry_accruals",
        "carried_interest_accounts",
        "waterfall_calculations",
        "waterfall_structures",
        "fee_transactions",
        "fee_schedules",
        "nav_marks",
        "capital_transactions",
        "capital_accounts",
        "share_classes",
        "audit_events",
        "user_fund_roles",
        "users",
        "funds",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_name in (
        "period_close_status_enum",
        "tax_document_status_enum",
        "tax_document_type_enum",
        "statement_status_enum",
        "statement_type_enum",
        "clawback_status_enum",
        "carry_account_status_enum",
        "waterfall_status_enum",
        "waterfall_type_enum",
        "fee_transaction_status_enum",
        "fee_schedule_status_enum",
        "fee_frequency_enum",
        "fee_calculation_method_enum",
        "fee_type_enum",
        "capital_tx_type_enum",
        "capital_account_status_enum",
        "share_class_status_enum",
        "nav_frequency_enum",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
