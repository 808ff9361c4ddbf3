from __future__ import annotations

import calendar
import uuid
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.db.audit import audit_row
from app.domain.ledger.models.capital_accounts import CapitalAccount
from app.domain.ledger.services import capital_ledger
from app.domain.ledger.services.nav_provider import nav_as_of
from app.domain.reporting.enums import StatementStatus, StatementType
from app.domain.reporting.models.investor_statements import InvestorStatement
from app.shared.batch import CloseStage, StageResult
from app.shared.exceptions import AppError, ConflictError, NotFound, ValidationError
from app.shared.utils import money, quantize, sa_model_to_dict, shares


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

_LOCKED = (StatementStatus.FINALIZED, StatementStatus.SENT)


@dataclass(frozen=True)
class StatementFigures:
    beginning_shares: Decimal
    ending_shares: Decimal
    beginning_nav_per_share: Decimal | None
    ending_nav_per_share: Decimal
    beginning_balance: Decimal
    contributions: Decimal
    distributions: Decimal
    fees: Decimal
    ending_balance: Decimal
    return_amount: Decimal
    return_percent: Decimal


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def infer_statement_type(period_start: date, period_end: date) -> StatementType:
    """Calendar month, quarter or year when the period lines up with one; otherwise on demand."""
    last_day = calendar.monthrange(period_end.year, period_end.month)[1]
    if period_start.day != 1 or period_end.day != last_day or period_start.year != period_end.year:
        return StatementType.ON_DEMAND
    months = period_end.month - period_start.month + 1
    if months == 1:
        return StatementType.MONTHLY
    if months == 3 and period_start.month in (1, 4, 7, 10):
        return StatementType.QUARTERLY
    if months == 12:
        return StatementType.ANNUAL
    return StatementType.ON_DEMAND


def compute_figures(db: Session, account: CapitalAccount, period_start: date, period_end: date) -> StatementFigures:
    """
    Statement arithmetic for one account:
    - beginning is measured the day before period_start, ending at period_end
    - an account with no beginning shares needs no prior NAV
    - return_percent is 0 when the beginning balance is 0
    """
    prior_day = period_start - timedelta(days=1)
    beginning_shares = capital_ledger.shares_as_of(db, account, prior_day)
    ending_shares = capital_ledger.shares_as_of(db, account, period_end)

    ending_nav = nav_as_of(
        db, fund_id=account.fund_id, as_of=period_end, share_class_id=account.share_class_id
    ).nav_per_share

    beginning_nav: Decimal | None = None
    beginning_balance = ZERO
    if beginning_shares != 0:
        beginning_nav = nav_as_of(
            db, fund_id=account.fund_id, as_of=prior_day, share_class_id=account.share_class_id
        ).nav_per_share
        beginning_balance = money(beginning_shares * beginning_nav)

    flows = capital_ledger.net_flows_in_period(db, account, period_start, period_end)
    ending_balance = money(ending_shares * ending_nav)
    return_amount = money(
        ending_balance - beginning_balance - flows.contributions + flows.distributions + flows.fee_debits
    )
    return_percent = ZERO
    if beginning_balance > 0:
        return_percent = quantize(return_amount / beginning_balance * HUNDRED, 4)

    return StatementFigures(
        beginning_shares=beginning_shares,
        ending_shares=ending_shares,
        beginning_nav_per_share=shares(beginning_nav) if beginning_nav is not None else None,
        ending_nav_per_share=shares(ending_nav),
        beginning_balance=beginning_balance,
        contributions=flows.contributions,
        distributions=flows.distributions,
        fees=flows.fee_debits,
        ending_balance=ending_balance,
        return_amount=return_amount,
        return_percent=quantize(return_percent, 4),
    )


def latest_statement(
    db: Session,
    *,
    account_id: uuid.UUID,
    period_start: date,
    period_end: date,
) -> InvestorStatement | None:
    return db.execute(
        select(InvestorStatement)
        .where(
            InvestorStatement.capital_account_id == account_id,
            InvestorStatement.period_start == period_start,
            InvestorStatement.period_end == period_end,
        )
        .order_by(InvestorStatement.version.desc())
        .limit(1)
    ).scalar_one_or_none()


def _apply(statement: InvestorStatement, figures: StatementFigures) -> None:
    for key, value in asdict(figures).items():
        setattr(statement, key, value)


def _generate(
    db: Session,
    *,
    account: CapitalAccount,
    period_start: date,
    period_end: date,
    statement_type: StatementType | None,
    new_version: bool,
    actor_id: str | None,
) -> InvestorStatement:
    if period_end < period_start:
        raise ValidationError("period_end must not precede period_start")

    latest = latest_statement(db, account_id=account.id, period_start=period_start, period_end=period_end)
    if latest is not None and latest.status in _LOCKED and not new_version:
        raise ConflictError(
            f"Statement v{latest.version} for account {account.account_number} is {StatementStatus(latest.status).value}; "
            "request a new version to regenerate"
        )

    figures = compute_figures(db, account, period_start, period_end)
    statement_type = StatementType(statement_type) if statement_type else infer_statement_type(period_start, period_end)

    if latest is not None and latest.status == StatementStatus.DRAFT:
        before = sa_model_to_dict(latest)
        _apply(latest, figures)
        latest.statement_type = statement_type
        latest.updated_by = actor_id
        db.flush()
        audit_row(db, latest, action="STATEMENT_REGENERATED", entity_type="investor_statement", actor_id=actor_id, before=before)
        return latest

    statement = InvestorStatement(
        fund_id=account.fund_id,
        access_level="internal",
        capital_account_id=account.id,
        period_start=period_start,
        period_end=period_end,
        version=(latest.version + 1) if latest is not None else 1,
        statement_type=statement_type,
        status=StatementStatus.DRAFT,
        created_by=actor_id,
        updated_by=actor_id,
    )
    _apply(statement, figures)
    db.add(statement)
    try:
        db.flush()
    except IntegrityError as e:
        raise ConflictError(
            f"Statement for account {account.account_number} {period_start.isoformat()}..{period_end.isoformat()} "
            "was written concurrently"
        ) from e

    audit_row(db, statement, action="STATEMENT_GENERATED", entity_type="investor_statement", actor_id=actor_id)
    return statement


def generate_statement(
    db: Session,
    *,
    account: CapitalAccount,
    period_start: date,
    period_end: date,
    statement_type: StatementType | None = None,
    new_version: bool = False,
    actor_id: str | None = None,
) -> InvestorStatement:
    """
    Build (or rebuild) the statement for one account and period.

    A draft is overwritten in place. A finalized or sent statement is never
    touched: regeneration is rejected unless `new_version` is set, in which case
    a fresh draft with the next version number is written.
    """
    try:
        statement = _generate(
            db,
            account=account,
            period_start=period_start,
            period_end=period_end,
            statement_type=statement_type,
            new_version=new_version,
            actor_id=actor_id,
        )
    except Exception:
        db.rollback()
        raise
    db.commit()
    db.refresh(statement)
    return statement


def run_statements(
    db: Session,
    *,
    fund_id: uuid.UUID,
    period_start: date,
    period_end: date,
    statement_type: StatementType | None = None,
    actor_id: str | None = None,
) -> StageResult:
    result = StageResult(stage=CloseStage.STATEMENTS)
    account_ids = [a.id for a in capital_ledger.list_active_accounts(db, fund_id=fund_id)]

    for account_id in account_ids:
        account = db.get(CapitalAccount, account_id)
        try:
            latest = latest_statement(db, account_id=account_id, period_start=period_start, period_end=period_end)
            if latest is not None and latest.status in _LOCKED:
                result.record_skipped()
                continue

            statement = _generate(
                db,
                account=account,
                period_start=period_start,
                period_end=period_end,
                statement_type=statement_type,
                new_version=False,
                actor_id=actor_id,
            )
            db.commit()
            result.record_created(statement.id)
        except AppError as e:
            db.rollback()
            result.record_error(account_id, e, context="capital_account")
            logger.warning(
                "statement_generator.account.failed",
                fund_id=str(fund_id),
                account_id=str(account_id),
                error=str(e),
            )
        except Exception as e:
            db.rollback()
            result.record_error(account_id, e, context="capital_account")
            logger.exception(
                "statement_generator.account.unexpected_error",
                fund_id=str(fund_id),
                account_id=str(account_id),
            )

    logger.info(
        "statement_generator.run.completed",
        fund_id=str(fund_id),
        period_start=period_start.isoformat(),
        period_end=period_end.isoformat(),
        processed=result.processed,
        skipped=result.skipped,
        failed=result.failed,
    )
    return result


def get_statement(db: Session, *, fund_id: uuid.UUID, statement_id: uuid.UUID) -> InvestorStatement:
    statement = db.execute(
        select(InvestorStatement).where(InvestorStatement.fund_id == fund_id, InvestorStatement.id == statement_id)
    ).scalar_one_or_none()
    if statement is None:
        raise NotFound("Investor statement not found")
    return statement


def list_statements(
    db: Session,
    *,
    fund_id: uuid.UUID,
    period_end: date | None = None,
    account_id: uuid.UUID | None = None,
) -> list[InvestorStatement]:
    stmt = select(InvestorStatement).where(InvestorStatement.fund_id == fund_id)
    if period_end is not None:
        stmt = stmt.where(InvestorStatement.period_end == period_end)
    if account_id is not None:
        stmt = stmt.where(InvestorStatement.capital_account_id == account_id)
    stmt = stmt.order_by(InvestorStatement.period_end.desc(), InvestorStatement.version.desc())
    return list(db.execute(stmt).scalars().all())


def finalize_statement(
    db: Session,
    *,
    fund_id: uuid.UUID,
    statement_id: uuid.UUID,
    actor_id: str | None = None,
) -> InvestorStatement:
    statement = get_statement(db, fund_id=fund_id, statement_id=statement_id)
    if statement.status != StatementStatus.DRAFT:
        raise ValidationError(f"Invalid transition: {StatementStatus(statement.status).value} → finalized")

    before = sa_model_to_dict(statement)
    statement.status = StatementStatus.FINALIZED
    statement.finalized_at = _utcnow()
    statement.finalized_by = actor_id
    statement.updated_by = actor_id
    audit_row(db, statement, action="STATEMENT_FINALIZED", entity_type="investor_statement", actor_id=actor_id, before=before)
    db.commit()
    db.refresh(statement)
    return statement


def mark_statement_sent(
    db: Session,
    *,
    fund_id: uuid.UUID,
    statement_id: uuid.UUID,
    actor_id: str | None = None,
) -> InvestorStatement:
    statement = get_statement(db, fund_id=fund_id, statement_id=statement_id)
    if statement.status != StatementStatus.FINALIZED:
        raise ValidationError(f"Invalid transition: {StatementStatus(statement.status).value} → sent")

    before = sa_model_to_dict(statement)
    statement.status = StatementStatus.SENT
    statement.sent_at = _utcnow()
    statement.sent_by = actor_id
    statement.updated_by = actor_id
    audit_row(db, statement, action="STATEMENT_SENT", entity_type="investor_statement", actor_id=actor_id, before=before)
    db.commit()
    db.refresh(statement)
    return statement
