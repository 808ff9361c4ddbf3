from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.db.audit import audit_row
from app.domain.carry.enums import CarryAccountStatus, ClawbackStatus, WaterfallStatus
from app.domain.carry.models.carry_accounts import CarriedInterestAccount, CarryAccrual
from app.domain.carry.models.clawbacks import ClawbackProvision
from app.domain.carry.models.waterfalls import WaterfallCalculation, WaterfallStructure
from app.shared.batch import CloseStage, StageResult
from app.shared.exceptions import AppError, ConflictError, NotFound, PreconditionFailed, ValidationError
from app.shared.utils import money, sa_model_to_dict, to_decimal


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- waterfall inputs ----------------------------------------------------------


def get_structure(db: Session, *, fund_id: uuid.UUID, structure_id: uuid.UUID) -> WaterfallStructure:
    structure = db.execute(
        select(WaterfallStructure).where(WaterfallStructure.fund_id == fund_id, WaterfallStructure.id == structure_id)
    ).scalar_one_or_none()
    if structure is None:
        raise NotFound("Waterfall structure not found")
    return structure


def record_waterfall_calculation(
    db: Session,
    *,
    fund_id: uuid.UUID,
    waterfall_structure_id: uuid.UUID,
    calculation_date: date,
    total_contributions,
    total_distributions,
    current_nav,
    lp_allocation,
    gp_allocation,
    tier_breakdown: dict | None = None,
    actor_id: str | None = None,
) -> WaterfallCalculation:
    """Store a result handed over by the waterfall engine. One per (structure, date)."""
    structure = get_structure(db, fund_id=fund_id, structure_id=waterfall_structure_id)
    if structure.status != WaterfallStatus.ACTIVE:
        raise ValidationError("Waterfall structure is inactive")
    if money(gp_allocation) < 0 or money(lp_allocation) < 0:
        raise ValidationError("Allocations must be non-negative")

    calc = WaterfallCalculation(
        fund_id=fund_id,
        access_level="internal",
        waterfall_structure_id=structure.id,
        calculation_date=calculation_date,
        total_contributions=money(total_contributions),
        total_distributions=money(total_distributions),
        current_nav=money(current_nav),
        lp_allocation=money(lp_allocation),
        gp_allocation=money(gp_allocation),
        tier_breakdown=tier_breakdown,
        created_by=actor_id,
    )
    db.add(calc)
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(
            f"Waterfall calculation already recorded for {calculation_date.isoformat()}"
        ) from e

    audit_row(db, calc, action="WATERFALL_CALCULATION_RECORDED", entity_type="waterfall_calculation", actor_id=actor_id)
    db.commit()
    db.refresh(calc)
    return calc


def latest_calculation(db: Session, *, structure_id: uuid.UUID, as_of: date) -> WaterfallCalculation | None:
    return db.execute(
        select(WaterfallCalculation)
        .where(
            WaterfallCalculation.waterfall_structure_id == structure_id,
            WaterfallCalculation.calculation_date <= as_of,
        )
        .order_by(WaterfallCalculation.calculation_date.desc())
        .limit(1)
    ).scalar_one_or_none()


def _require_calculation(db: Session, account: CarriedInterestAccount, as_of: date) -> WaterfallCalculation:
    calc = latest_calculation(db, structure_id=account.waterfall_structure_id, as_of=as_of)
    if calc is None:
        raise PreconditionFailed(
            f"No waterfall calculation at or before {as_of.isoformat()} for carry account {account.id}"
        )
    return calc


# --- carry accounts ------------------------------------------------------------


def get_carry_account(db: Session, *, fund_id: uuid.UUID, account_id: uuid.UUID) -> CarriedInterestAccount:
    account = db.execute(
        select(CarriedInterestAccount).where(
            CarriedInterestAccount.fund_id == fund_id,
            CarriedInterestAccount.id == account_id,
        )
    ).scalar_one_or_none()
    if account is None:
        raise NotFound("Carried interest account not found")
    return account


def list_carry_accounts(
    db: Session,
    *,
    fund_id: uuid.UUID,
    status: CarryAccountStatus | None = None,
) -> list[CarriedInterestAccount]:
    stmt = select(CarriedInterestAccount).where(CarriedInterestAccount.fund_id == fund_id)
    if status is not None:
        stmt = stmt.where(CarriedInterestAccount.status == status)
    return list(db.execute(stmt.order_by(CarriedInterestAccount.gp_entity_name.asc())).scalars().all())


def create_carry_account(
    db: Session,
    *,
    fund_id: uuid.UUID,
    waterfall_structure_id: uuid.UUID,
    gp_entity_name: str,
    actor_id: str | None = None,
) -> CarriedInterestAccount:
    get_structure(db, fund_id=fund_id, structure_id=waterfall_structure_id)
    account = CarriedInterestAccount(
        fund_id=fund_id,
        access_level="internal",
        waterfall_structure_id=waterfall_structure_id,
        gp_entity_name=gp_entity_name,
        total_carry_accrued=ZERO,
        total_carry_distributed=ZERO,
        clawback_reserve=ZERO,
        high_water_mark=ZERO,
        status=CarryAccountStatus.ACTIVE,
        created_by=actor_id,
        updated_by=actor_id,
    )
    db.add(account)
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f"Carry account already exists for {gp_entity_name}") from e

    audit_row(db, account, action="CARRY_ACCOUNT_CREATED", entity_type="carried_interest_account", actor_id=actor_id)
    db.commit()
    db.refresh(account)
    return account


_ACCOUNT_TRANSITIONS: dict[CarryAccountStatus, list[CarryAccountStatus]] = {
    CarryAccountStatus.ACTIVE: [CarryAccountStatus.SUSPENDED],
    CarryAccountStatus.SUSPENDED: [CarryAccountStatus.TERMINATED],
    CarryAccountStatus.TERMINATED: [],  # Terminal state
}


def transition_carry_account(
    db: Session,
    *,
    fund_id: uuid.UUID,
    account_id: uuid.UUID,
    to_status: CarryAccountStatus,
    actor_id: str | None = None,
) -> CarriedInterestAccount:
    account = get_carry_account(db, fund_id=fund_id, account_id=account_id)
    current = CarryAccountStatus(account.status)
    to_status = CarryAccountStatus(to_status)
    if to_status not in _ACCOUNT_TRANSITIONS[current]:
        raise ValidationError(f"Invalid transition: {current.value} → {to_status.value}")

    before = sa_model_to_dict(account)
    account.status = to_status
    account.updated_by = actor_id
    audit_row(
        db,
        account,
        action=f"CARRY_ACCOUNT_{to_status.value.upper()}",
        entity_type="carried_interest_account",
        actor_id=actor_id,
        before=before,
    )
    db.commit()
    db.refresh(account)
    return account


# --- accrual -------------------------------------------------------------------


def _accrue(
    db: Session,
    *,
    account: CarriedInterestAccount,
    as_of: date,
    actor_id: str | None,
) -> tuple[CarryAccrual, bool]:
    if account.status != CarryAccountStatus.ACTIVE:
        raise ValidationError(f"Carry account {account.id} is {CarryAccountStatus(account.status).value}; only active accounts accrue")

    calc = _require_calculation(db, account, as_of)

    existing = db.execute(
        select(CarryAccrual).where(
            CarryAccrual.carry_account_id == account.id,
            CarryAccrual.waterfall_calculation_id == calc.id,
        )
    ).scalar_one_or_none()
    if existing is not None:
        return existing, False

    if account.last_calculation_date is not None and calc.calculation_date < account.last_calculation_date:
        raise ValidationError(
            f"Waterfall calculation {calc.calculation_date.isoformat()} is older than the last applied "
            f"{account.last_calculation_date.isoformat()}"
        )

    earned = money(calc.gp_allocation)
    previous = money(account.total_carry_accrued)
    hwm_before = money(account.high_water_mark)
    hwm_after = max(hwm_before, money(calc.current_nav))

    accrual = CarryAccrual(
        fund_id=account.fund_id,
        access_level="internal",
        carry_account_id=account.id,
        waterfall_calculation_id=calc.id,
        calculation_date=calc.calculation_date,
        earned_to_date=earned,
        delta_accrued=earned - previous,
        high_water_mark_before=hwm_before,
        high_water_mark_after=hwm_after,
        created_by=actor_id,
    )
    db.add(accrual)

    before = sa_model_to_dict(account)
    account.total_carry_accrued = earned
    account.high_water_mark = hwm_after
    account.last_calculation_date = calc.calculation_date
    account.updated_by = actor_id
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f"Carry already accrued for calculation {accrual.waterfall_calculation_id}") from e

    audit_row(db, accrual, action="CARRY_ACCRUED", entity_type="carry_accrual", actor_id=actor_id)
    audit_row(
        db,
        account,
        action="CARRY_ACCOUNT_UPDATED",
        entity_type="carried_interest_account",
        actor_id=actor_id,
        before=before,
    )
    return accrual, True


def accrue_carry(
    db: Session,
    *,
    account: CarriedInterestAccount,
    as_of: date,
    actor_id: str | None = None,
) -> CarryAccrual:
    """Apply the latest waterfall calculation at or before `as_of` to the account.

    Re-accruing a calculation that was already applied returns the existing row.
    """
    accrual, created = _accrue(db, account=account, as_of=as_of, actor_id=actor_id)
    if created:
        db.commit()
        db.refresh(accrual)
        logger.info(
            "carry_engine.accrued",
            fund_id=str(account.fund_id),
            carry_account_id=str(account.id),
            earned_to_date=str(accrual.earned_to_date),
            high_water_mark=str(accrual.high_water_mark_after),
        )
    return accrual


def record_carry_distribution(
    db: Session,
    *,
    fund_id: uuid.UUID,
    account_id: uuid.UUID,
    amount,
    actor_id: str | None = None,
) -> CarriedInterestAccount:
    account = get_carry_account(db, fund_id=fund_id, account_id=account_id)
    amount = money(amount)
    if amount <= 0:
        raise ValidationError("Carry distribution amount must be positive")
    if account.status == CarryAccountStatus.TERMINATED:
        raise ValidationError("Cannot distribute carry from a terminated account")

    before = sa_model_to_dict(account)
    account.total_carry_distributed = money(to_decimal(account.total_carry_distributed) + amount)
    account.updated_by = actor_id
    audit_row(
        db,
        account,
        action="CARRY_DISTRIBUTED",
        entity_type="carried_interest_account",
        actor_id=actor_id,
        before=before,
        extra={"distribution_amount": str(amount)},
    )
    db.commit()
    db.refresh(account)
    return account


# --- clawback ------------------------------------------------------------------


def _release_reserve(
    db: Session,
    *,
    account: CarriedInterestAccount,
    calc: WaterfallCalculation,
    actor_id: str | None,
) -> bool:
    """Zero a reserve left by an earlier provision once earned carry covers distributions again."""
    if money(account.clawback_reserve) == 0:
        return False
    before = sa_model_to_dict(account)
    account.clawback_reserve = ZERO
    account.updated_by = actor_id
    audit_row(
        db,
        account,
        action="CLAWBACK_RESERVE_RELEASED",
        entity_type="carried_interest_account",
        actor_id=actor_id,
        before=before,
        extra={"waterfall_calculation_id": str(calc.id)},
    )
    return True


def _clawback(
    db: Session,
    *,
    account: CarriedInterestAccount,
    calculation_date: date,
    actor_id: str | None,
) -> tuple[ClawbackProvision | None, bool]:
    existing = db.execute(
        select(ClawbackProvision).where(
            ClawbackProvision.carry_account_id == account.id,
            ClawbackProvision.calculation_date == calculation_date,
        )
    ).scalar_one_or_none()
    if existing is not None:
        return existing, False

    calc = _require_calculation(db, account, calculation_date)
    distributed = money(account.total_carry_distributed)
    earned = money(calc.gp_allocation)
    amount = max(ZERO, distributed - earned)
    if amount == 0:
        return None, _release_reserve(db, account=account, calc=calc, actor_id=actor_id)

    provision = ClawbackProvision(
        fund_id=account.fund_id,
        access_level="internal",
        carry_account_id=account.id,
        waterfall_calculation_id=calc.id,
        calculation_date=calculation_date,
        total_carry_distributed=distributed,
        total_carry_earned=earned,
        clawback_amount=amount,
        amount_paid=ZERO,
        calculation_details={
            "waterfall_calculation_date": calc.calculation_date.isoformat(),
            "lp_allocation": str(calc.lp_allocation),
            "current_nav": str(calc.current_nav),
        },
        status=ClawbackStatus.CALCULATED,
        created_by=actor_id,
        updated_by=actor_id,
    )
    db.add(provision)

    before = sa_model_to_dict(account)
    account.clawback_reserve = amount
    account.updated_by = actor_id
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f"Clawback already calculated for {calculation_date.isoformat()}") from e

    audit_row(db, provision, action="CLAWBACK_CALCULATED", entity_type="clawback_provision", actor_id=actor_id)
    audit_row(
        db,
        account,
        action="CARRY_ACCOUNT_UPDATED",
        entity_type="carried_interest_account",
        actor_id=actor_id,
        before=before,
    )
    return provision, True


def calculate_clawback(
    db: Session,
    *,
    account: CarriedInterestAccount,
    calculation_date: date,
    actor_id: str | None = None,
) -> ClawbackProvision | None:
    """Compare distributed carry with earned carry; returns None when nothing is owed back."""
    provision, changed = _clawback(db, account=account, calculation_date=calculation_date, actor_id=actor_id)
    if not changed:
        return provision
    db.commit()
    if provision is None:
        logger.info(
            "carry_engine.clawback.reserve_released",
            fund_id=str(account.fund_id),
            carry_account_id=str(account.id),
        )
    else:
        db.refresh(provision)
        logger.warning(
            "carry_engine.clawback.calculated",
            fund_id=str(account.fund_id),
            carry_account_id=str(account.id),
            clawback_amount=str(provision.clawback_amount),
        )
    return provision


_CLAWBACK_TRANSITIONS: dict[ClawbackStatus, list[ClawbackStatus]] = {
    ClawbackStatus.CALCULATED: [ClawbackStatus.NOTIFIED],
    ClawbackStatus.NOTIFIED: [ClawbackStatus.PAID, ClawbackStatus.WAIVED],
    ClawbackStatus.PAID: [],  # Terminal state
    ClawbackStatus.WAIVED: [],  # Terminal state
}


def get_clawback(db: Session, *, fund_id: uuid.UUID, provision_id: uuid.UUID) -> ClawbackProvision:
    provision = db.execute(
        select(ClawbackProvision).where(ClawbackProvision.fund_id == fund_id, ClawbackProvision.id == provision_id)
    ).scalar_one_or_none()
    if provision is None:
        raise NotFound("Clawback provision not found")
    return provision


def _ensure_clawback_transition(provision: ClawbackProvision, to_status: ClawbackStatus) -> None:
    current = ClawbackStatus(provision.status)
    if to_status not in _CLAWBACK_TRANSITIONS[current]:
        raise ValidationError(f"Invalid transition: {current.value} → {to_status.value}")


def notify_clawback(
    db: Session,
    *,
    fund_id: uuid.UUID,
    provision_id: uuid.UUID,
    actor_id: str | None = None,
) -> ClawbackProvision:
    provision = get_clawback(db, fund_id=fund_id, provision_id=provision_id)
    _ensure_clawback_transition(provision, ClawbackStatus.NOTIFIED)

    before = sa_model_to_dict(provision)
    provision.status = ClawbackStatus.NOTIFIED
    provision.notified_at = _utcnow()
    provision.updated_by = actor_id
    audit_row(db, provision, action="CLAWBACK_NOTIFIED", entity_type="clawback_provision", actor_id=actor_id, before=before)
    db.commit()
    db.refresh(provision)
    return provision


def pay_clawback(
    db: Session,
    *,
    fund_id: uuid.UUID,
    provision_id: uuid.UUID,
    amount_paid,
    payment_date: date,
    actor_id: str | None = None,
) -> ClawbackProvision:
    provision = get_clawback(db, fund_id=fund_id, provision_id=provision_id)
    _ensure_clawback_transition(provision, ClawbackStatus.PAID)

    amount = money(amount_paid)
    if amount <= 0:
        raise ValidationError("amount_paid must be positive")
    if amount > money(provision.clawback_amount):
        raise ValidationError(f"amount_paid {amount} exceeds clawback_amount {provision.clawback_amount}")

    before = sa_model_to_dict(provision)
    provision.status = ClawbackStatus.PAID
    provision.amount_paid = amount
    provision.payment_date = payment_date
    provision.updated_by = actor_id
    audit_row(db, provision, action="CLAWBACK_PAID", entity_type="clawback_provision", actor_id=actor_id, before=before)
    db.commit()
    db.refresh(provision)
    return provision


def waive_clawback(
    db: Session,
    *,
    fund_id: uuid.UUID,
    provision_id: uuid.UUID,
    actor_id: str | None = None,
    reason: str | None = None,
) -> ClawbackProvision:
    provision = get_clawback(db, fund_id=fund_id, provision_id=provision_id)
    _ensure_clawback_transition(provision, ClawbackStatus.WAIVED)

    before = sa_model_to_dict(provision)
    provision.status = ClawbackStatus.WAIVED
    provision.updated_by = actor_id
    audit_row(
        db,
        provision,
        action="CLAWBACK_WAIVED",
        entity_type="clawback_provision",
        actor_id=actor_id,
        before=before,
        extra={"waive_reason": reason},
    )
    db.commit()
    db.refresh(provision)
    return provision


# --- period close stage --------------------------------------------------------


def run_carry_stage(
    db: Session,
    *,
    fund_id: uuid.UUID,
    period_end: date,
    actor_id: str | None = None,
) -> StageResult:
    """Accrue every active carry account and check clawback exposure where the structure provides for it."""
    result = StageResult(stage=CloseStage.CARRY)
    account_ids = [a.id for a in list_carry_accounts(db, fund_id=fund_id, status=CarryAccountStatus.ACTIVE)]

    for account_id in account_ids:
        account = db.get(CarriedInterestAccount, account_id)
        try:
            accrual, accrued = _accrue(db, account=account, as_of=period_end, actor_id=actor_id)
            structure = db.get(WaterfallStructure, account.waterfall_structure_id)
            provision, clawed = None, False
            if structure.clawback_provision:
                provision, clawed = _clawback(db, account=account, calculation_date=period_end, actor_id=actor_id)

            if not (accrued or clawed):
                db.rollback()
                result.record_skipped()
                continue
            db.commit()
            if accrued:
                result.record_created(accrual.id)
            if clawed:
                # A released reserve has no provision row; the account itself changed.
                result.record_created(provision.id if provision is not None else account_id)
        except AppError as e:
            db.rollback()
            result.record_error(account_id, e, context="carried_interest_account")
            logger.warning(
                "carry_engine.account.failed",
                fund_id=str(fund_id),
                carry_account_id=str(account_id),
                error=str(e),
            )
        except Exception as e:
            db.rollback()
            result.record_error(account_id, e, context="carried_interest_account")
            logger.exception(
                "carry_engine.account.unexpected_error",
                fund_id=str(fund_id),
                carry_account_id=str(account_id),
            )

    logger.info(
        "carry_engine.run.completed",
        fund_id=str(fund_id),
        period_end=period_end.isoformat(),
        processed=result.processed,
        skipped=result.skipped,
        failed=result.failed,
    )
    return result
