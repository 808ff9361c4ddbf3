from __future__ import annotations

import calendar
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db.audit import audit_row
from app.domain.fees.enums import (
    FeeCalculationMethod,
    FeeFrequency,
    FeeScheduleStatus,
    FeeTransactionStatus,
    FeeType,
)
from app.domain.fees.models.fee_schedules import FeeSchedule
from app.domain.fees.models.fee_transactions import FeeTransaction
from app.domain.ledger.enums import CapitalTransactionType
from app.domain.ledger.models.capital_accounts import CapitalAccount
from app.domain.ledger.models.share_classes import ShareClass
from app.domain.ledger.services import capital_ledger
from app.domain.ledger.services.nav_provider import nav_as_of
from app.shared.batch import CloseStage, StageResult
from app.shared.exceptions import AppError, ConflictError, NotFound, ValidationError
from app.shared.utils import money, quantize, sa_model_to_dict, shares, to_decimal


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")

PERIODS_PER_YEAR: dict[FeeFrequency, int] = {
    FeeFrequency.MONTHLY: 12,
    FeeFrequency.QUARTERLY: 4,
    FeeFrequency.ANNUAL: 1,
}

_QUARTER_END_MONTHS = {3, 6, 9, 12}

_NAV_METHODS = {FeeCalculationMethod.PCT_OF_NAV, FeeCalculationMethod.PCT_OF_GAINS}


@dataclass(frozen=True)
class FeeComputation:
    base_amount: Decimal
    rate_applied: Decimal
    fee_amount: Decimal
    nav_per_share: Decimal | None
    high_water_mark: Decimal | None
    details: dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_month_end(d: date) -> bool:
    return d.day == calendar.monthrange(d.year, d.month)[1]


def schedule_is_due(schedule: FeeSchedule, period_end: date) -> bool:
    """A schedule charges only on the last day of its own frequency's calendar period."""
    if not _is_month_end(period_end):
        return False
    if schedule.frequency == FeeFrequency.QUARTERLY:
        return period_end.month in _QUARTER_END_MONTHS
    if schedule.frequency == FeeFrequency.ANNUAL:
        return period_end.month == 12
    return True


def prorated(annual_rate, frequency: FeeFrequency) -> Decimal:
    return to_decimal(annual_rate) / PERIODS_PER_YEAR[FeeFrequency(frequency)]


def charge_window(schedule: FeeSchedule, period_end: date) -> tuple[date, date]:
    """The calendar period of the schedule's own frequency that ends on `period_end`.

    Fee rows are keyed by this window, never by the close range that triggered them.
    """
    frequency = FeeFrequency(schedule.frequency)
    if frequency == FeeFrequency.ANNUAL:
        return date(period_end.year, 1, 1), period_end
    if frequency == FeeFrequency.QUARTERLY:
        return date(period_end.year, period_end.month - 2, 1), period_end
    return period_end.replace(day=1), period_end


def active_schedules(db: Session, *, fund_id: uuid.UUID, period_start: date, period_end: date) -> list[FeeSchedule]:
    stmt = (
        select(FeeSchedule)
        .where(
            FeeSchedule.fund_id == fund_id,
            FeeSchedule.status == FeeScheduleStatus.ACTIVE,
            FeeSchedule.start_date <= period_end,
            or_(FeeSchedule.end_date.is_(None), FeeSchedule.end_date >= period_start),
        )
        .order_by(FeeSchedule.created_at.asc(), FeeSchedule.fee_name.asc())
    )
    return list(db.execute(stmt).scalars().all())


def existing_fee(
    db: Session,
    *,
    schedule_id: uuid.UUID,
    account_id: uuid.UUID,
    period_end: date,
) -> FeeTransaction | None:
    return db.execute(
        select(FeeTransaction).where(
            FeeTransaction.fee_schedule_id == schedule_id,
            FeeTransaction.capital_account_id == account_id,
            FeeTransaction.period_end == period_end,
        )
    ).scalar_one_or_none()


def high_water_mark_for(
    db: Session,
    *,
    schedule: FeeSchedule,
    account: CapitalAccount,
    before: date,
    initial: Decimal | None,
) -> Decimal | None:
    """Highest NAV per share a prior performance fee crystallized at; falls back to average cost."""
    prior = db.execute(
        select(FeeTransaction.nav_per_share).where(
            FeeTransaction.fee_schedule_id == schedule.id,
            FeeTransaction.capital_account_id == account.id,
            FeeTransaction.period_end < before,
            FeeTransaction.nav_per_share.is_not(None),
            FeeTransaction.status != FeeTransactionStatus.WAIVED,
        )
    ).scalars().all()
    candidates = [to_decimal(v) for v in prior]
    if initial is not None:
        candidates.append(initial)
    return max(candidates) if candidates else None


def compute_fee(
    db: Session,
    *,
    schedule: FeeSchedule,
    account: CapitalAccount,
    period_start: date,
    period_end: date,
) -> FeeComputation | None:
    """Evaluate one (schedule, account, period). Returns None for a degenerate (non-positive) base."""
    rate = prorated(schedule.annual_rate, schedule.frequency)
    method = FeeCalculationMethod(schedule.calculation_method)
    is_performance = schedule.fee_type == FeeType.PERFORMANCE
    details: dict = {
        "method": method.value,
        "fee_type": FeeType(schedule.fee_type).value,
        "annual_rate": str(schedule.annual_rate),
        "periods_per_year": PERIODS_PER_YEAR[FeeFrequency(schedule.frequency)],
    }

    nav_per_share: Decimal | None = None
    hwm: Decimal | None = None

    if method in _NAV_METHODS or is_performance:
        quote = nav_as_of(db, fund_id=account.fund_id, as_of=period_end, share_class_id=account.share_class_id)
        nav_per_share = quote.nav_per_share
        details["nav_mark_id"] = str(quote.mark_id)
        details["nav_date"] = quote.calculation_date.isoformat()

    if is_performance and schedule.high_water_mark:
        state = capital_ledger.replay(db, account, period_end)
        hwm = high_water_mark_for(
            db, schedule=schedule, account=account, before=period_start, initial=state.average_cost
        )
        if hwm is None or state.shares <= 0:
            return None
        hurdle = prorated(schedule.hurdle_rate or ZERO, schedule.frequency)
        threshold = hwm * (1 + hurdle)
        excess_per_share = max(ZERO, nav_per_share - threshold)
        base = money(state.shares * excess_per_share)
        details.update(
            {
                "shares": str(state.shares),
                "high_water_mark": str(hwm),
                "hurdle_rate_period": str(quantize(hurdle, settings.RATE_DECIMAL_PLACES)),
                "threshold_per_share": str(shares(threshold)),
            }
        )
    elif method == FeeCalculationMethod.PCT_OF_NAV:
        held = capital_ledger.shares_as_of(db, account, period_end)
        base = money(held * nav_per_share)
        details["shares"] = str(held)
    elif method == FeeCalculationMethod.PCT_OF_COMMITTED:
        base = money(account.commitment_amount)
    elif method == FeeCalculationMethod.PCT_OF_INVESTED:
        base = capital_ledger.replay(db, account, period_end).contributions
    else:
        snap = capital_ledger.snapshot(db, account, period_end, nav_per_share)
        base = snap.total_gain
        details["unrealized_gain"] = str(snap.unrealized_gain)
        details["realized_gain"] = str(snap.state.realized_gain)
        if is_performance and schedule.hurdle_rate:
            hurdle = prorated(schedule.hurdle_rate, schedule.frequency)
            base = money(base - snap.state.cost_basis * hurdle)
            details["hurdle_rate_period"] = str(quantize(hurdle, settings.RATE_DECIMAL_PLACES))

    if base <= 0:
        return None

    fee_amount = money(base * rate)
    if fee_amount <= 0:
        return None
    return FeeComputation(
        base_amount=base,
        rate_applied=quantize(rate, settings.RATE_DECIMAL_PLACES),
        fee_amount=fee_amount,
        nav_per_share=shares(nav_per_share) if is_performance and nav_per_share is not None else None,
        high_water_mark=shares(hwm) if hwm is not None else None,
        details=details,
    )


def _accounts_for(db: Session, schedule: FeeSchedule) -> list[CapitalAccount]:
    return capital_ledger.list_active_accounts(db, fund_id=schedule.fund_id, share_class_id=schedule.share_class_id)


def _process_account(
    db: Session,
    *,
    schedule: FeeSchedule,
    account: CapitalAccount,
    period_end: date,
    actor_id: str | None,
) -> FeeTransaction | None:
    period_start, period_end = charge_window(schedule, period_end)
    if existing_fee(db, schedule_id=schedule.id, account_id=account.id, period_end=period_end):
        return None

    comp = compute_fee(db, schedule=schedule, account=account, period_start=period_start, period_end=period_end)
    if comp is None:
        return None

    fee = FeeTransaction(
        fund_id=schedule.fund_id,
        access_level="internal",
        fee_schedule_id=schedule.id,
        capital_account_id=account.id,
        period_start=period_start,
        period_end=period_end,
        base_amount=comp.base_amount,
        rate_applied=comp.rate_applied,
        fee_amount=comp.fee_amount,
        paid_amount=ZERO,
        nav_per_share=comp.nav_per_share,
        high_water_mark=comp.high_water_mark,
        calculation_details=comp.details,
        status=FeeTransactionStatus.CALCULATED,
        created_by=actor_id,
        updated_by=actor_id,
    )
    db.add(fee)
    try:
        db.flush()
    except IntegrityError as e:
        key = f"schedule {fee.fee_schedule_id} / account {fee.capital_account_id} / {period_end.isoformat()}"
        db.rollback()
        raise ConflictError(f"Fee already recorded for {key}") from e

    audit_row(db, fee, action="FEE_CALCULATED", entity_type="fee_transaction", actor_id=actor_id)
    return fee


def run_fee_engine(
    db: Session,
    *,
    fund_id: uuid.UUID,
    period_start: date,
    period_end: date,
    actor_id: str | None = None,
) -> StageResult:
    """Evaluate every due, active schedule against every in-scope account for the period.

    Each emitted row is committed on its own; a rerun skips what already exists.
    """
    result = StageResult(stage=CloseStage.FEES)
    schedules = [s for s in active_schedules(db, fund_id=fund_id, period_start=period_start, period_end=period_end)
                 if schedule_is_due(s, period_end)]
    work = [(s.id, a.id) for s in schedules for a in _accounts_for(db, s)]

    for schedule_id, account_id in work:
        schedule = db.get(FeeSchedule, schedule_id)
        account = db.get(CapitalAccount, account_id)
        try:
            fee = _process_account(
                db,
                schedule=schedule,
                account=account,
                period_end=period_end,
                actor_id=actor_id,
            )
            if fee is None:
                db.rollback()
                result.record_skipped()
                continue
            db.commit()
            result.record_created(fee.id)
        except AppError as e:
            db.rollback()
            result.record_error(account_id, e, context=f"fee_schedule:{schedule_id}")
            logger.warning(
                "fee_engine.account.failed",
                fund_id=str(fund_id),
                account_id=str(account_id),
                fee_schedule_id=str(schedule_id),
                error=str(e),
            )
        except Exception as e:
            db.rollback()
            result.record_error(account_id, e, context=f"fee_schedule:{schedule_id}")
            logger.exception(
                "fee_engine.account.unexpected_error",
                fund_id=str(fund_id),
                account_id=str(account_id),
                fee_schedule_id=str(schedule_id),
            )

    logger.info(
        "fee_engine.run.completed",
        fund_id=str(fund_id),
        period_start=period_start.isoformat(),
        period_end=period_end.isoformat(),
        schedules=len(schedules),
        processed=result.processed,
        skipped=result.skipped,
        failed=result.failed,
    )
    return result


# --- lifecycle ---------------------------------------------------------------

_VALID_TRANSITIONS: dict[FeeTransactionStatus, list[FeeTransactionStatus]] = {
    FeeTransactionStatus.CALCULATED: [
        FeeTransactionStatus.INVOICED,
        FeeTransactionStatus.PAID,
        FeeTransactionStatus.WAIVED,
    ],
    FeeTransactionStatus.INVOICED: [
        FeeTransactionStatus.PAID,
        FeeTransactionStatus.WAIVED,
    ],
    FeeTransactionStatus.PAID: [],  # Terminal state
    FeeTransactionStatus.WAIVED: [],  # Terminal state
}


def _ensure_transition(fee: FeeTransaction, to_status: FeeTransactionStatus) -> None:
    current = FeeTransactionStatus(fee.status)
    if to_status not in _VALID_TRANSITIONS[current]:
        raise ValidationError(f"Invalid transition: {current.value} → {to_status.value}")


def get_fee(db: Session, *, fund_id: uuid.UUID, fee_id: uuid.UUID) -> FeeTransaction:
    fee = db.execute(
        select(FeeTransaction).where(FeeTransaction.fund_id == fund_id, FeeTransaction.id == fee_id)
    ).scalar_one_or_none()
    if fee is None:
        raise NotFound("Fee transaction not found")
    return fee


def list_fees(
    db: Session,
    *,
    fund_id: uuid.UUID,
    period_end: date | None = None,
    account_id: uuid.UUID | None = None,
) -> list[FeeTransaction]:
    stmt = select(FeeTransaction).where(FeeTransaction.fund_id == fund_id)
    if period_end is not None:
        stmt = stmt.where(FeeTransaction.period_end == period_end)
    if account_id is not None:
        stmt = stmt.where(FeeTransaction.capital_account_id == account_id)
    return list(db.execute(stmt.order_by(FeeTransaction.period_end.desc())).scalars().all())


def invoice_fee(db: Session, *, fund_id: uuid.UUID, fee_id: uuid.UUID, actor_id: str | None) -> FeeTransaction:
    fee = get_fee(db, fund_id=fund_id, fee_id=fee_id)
    _ensure_transition(fee, FeeTransactionStatus.INVOICED)

    before = sa_model_to_dict(fee)
    fee.status = FeeTransactionStatus.INVOICED
    fee.invoiced_at = _utcnow()
    fee.updated_by = actor_id
    audit_row(db, fee, action="FEE_INVOICED", entity_type="fee_transaction", actor_id=actor_id, before=before)
    db.commit()
    db.refresh(fee)
    return fee


def pay_fee(
    db: Session,
    *,
    fund_id: uuid.UUID,
    fee_id: uuid.UUID,
    paid_amount,
    paid_date: date,
    actor_id: str | None,
) -> FeeTransaction:
    """Settle a fee and post the matching fee_debit to the account's capital log."""
    fee = get_fee(db, fund_id=fund_id, fee_id=fee_id)
    _ensure_transition(fee, FeeTransactionStatus.PAID)

    amount = money(paid_amount)
    if amount <= 0:
        raise ValidationError("paid_amount must be positive")
    if amount > to_decimal(fee.fee_amount):
        raise ValidationError(f"paid_amount {amount} exceeds fee_amount {fee.fee_amount}")

    account = db.get(CapitalAccount, fee.capital_account_id)
    debit = capital_ledger.append_transaction(
        db,
        account=account,
        transaction_type=CapitalTransactionType.FEE_DEBIT,
        transaction_date=paid_date,
        amount=amount,
        share_delta=ZERO,
        reference=f"fee:{fee.id}",
        description=f"Fee payment for period ending {fee.period_end.isoformat()}",
        actor_id=actor_id,
        commit=False,
    )

    before = sa_model_to_dict(fee)
    fee.status = FeeTransactionStatus.PAID
    fee.paid_amount = amount
    fee.paid_date = paid_date
    fee.fee_debit_transaction_id = debit.id
    fee.updated_by = actor_id
    audit_row(db, fee, action="FEE_PAID", entity_type="fee_transaction", actor_id=actor_id, before=before)
    db.commit()
    db.refresh(fee)
    return fee


def waive_fee(
    db: Session,
    *,
    fund_id: uuid.UUID,
    fee_id: uuid.UUID,
    actor_id: str | None,
    reason: str | None = None,
) -> FeeTransaction:
    fee = get_fee(db, fund_id=fund_id, fee_id=fee_id)
    _ensure_transition(fee, FeeTransactionStatus.WAIVED)

    before = sa_model_to_dict(fee)
    fee.status = FeeTransactionStatus.WAIVED
    fee.updated_by = actor_id
    audit_row(
        db,
        fee,
        action="FEE_WAIVED",
        entity_type="fee_transaction",
        actor_id=actor_id,
        before=before,
        extra={"waive_reason": reason},
    )
    db.commit()
    db.refresh(fee)
    return fee


def create_default_schedules(
    db: Session,
    *,
    share_class: ShareClass,
    start_date: date,
    frequency: FeeFrequency = FeeFrequency.MONTHLY,
    actor_id: str | None = None,
) -> list[FeeSchedule]:
    """Materialize a share class's default management/performance rates as class-scoped schedules."""
    created: list[FeeSchedule] = []
    if to_decimal(share_class.management_fee_rate) > 0:
        created.append(
            FeeSchedule(
                fund_id=share_class.fund_id,
                share_class_id=share_class.id,
                fee_name=f"{share_class.class_code} management fee",
                fee_type=FeeType.MANAGEMENT,
                calculation_method=FeeCalculationMethod.PCT_OF_NAV,
                annual_rate=share_class.management_fee_rate,
                frequency=frequency,
                start_date=start_date,
                status=FeeScheduleStatus.ACTIVE,
                created_by=actor_id,
                updated_by=actor_id,
            )
        )
    if to_decimal(share_class.performance_fee_rate) > 0:
        created.append(
            FeeSchedule(
                fund_id=share_class.fund_id,
                share_class_id=share_class.id,
                fee_name=f"{share_class.class_code} performance fee",
                fee_type=FeeType.PERFORMANCE,
                calculation_method=FeeCalculationMethod.PCT_OF_GAINS,
                annual_rate=share_class.performance_fee_rate,
                frequency=frequency,
                hurdle_rate=share_class.hurdle_rate or None,
                high_water_mark=share_class.high_water_mark,
                start_date=start_date,
                status=FeeScheduleStatus.ACTIVE,
                created_by=actor_id,
                updated_by=actor_id,
            )
        )

    for schedule in created:
        db.add(schedule)
        db.flush()
        audit_row(db, schedule, action="FEE_SCHEDULE_CREATED", entity_type="fee_schedule", actor_id=actor_id)
    db.commit()
    return created
