from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.db.audit import audit_row
from app.domain.ledger.enums import CapitalAccountStatus, CapitalTransactionType
from app.domain.ledger.models.capital_accounts import CapitalAccount
from app.domain.ledger.models.capital_transactions import CapitalTransaction
from app.shared.exceptions import InvariantViolation, NotFound, ValidationError
from app.shared.utils import money, shares, to_decimal


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class PeriodFlows:
    contributions: Decimal = ZERO
    distributions: Decimal = ZERO
    fee_debits: Decimal = ZERO
    share_delta: Decimal = ZERO


@dataclass(frozen=True)
class AccountState:
    """Replayed position of one account as of a cutoff date."""

    account_id: uuid.UUID
    as_of: date
    shares: Decimal
    cost_basis: Decimal
    contributions: Decimal
    distributions: Decimal
    fee_debits: Decimal
    realized_gain: Decimal

    @property
    def average_cost(self) -> Decimal | None:
        if self.shares <= 0:
            return None
        return self.cost_basis / self.shares


@dataclass(frozen=True)
class AccountSnapshot:
    state: AccountState
    nav_per_share: Decimal
    market_value: Decimal
    unrealized_gain: Decimal

    @property
    def total_gain(self) -> Decimal:
        return money(self.unrealized_gain + self.state.realized_gain)


@dataclass
class LedgerAuditReport:
    account_id: uuid.UUID
    transaction_count: int = 0
    final_shares: Decimal = ZERO
    negative_share_dates: list[date] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.negative_share_dates


def get_account(db: Session, *, fund_id: uuid.UUID, account_id: uuid.UUID) -> CapitalAccount:
    account = db.execute(
        select(CapitalAccount).where(CapitalAccount.fund_id == fund_id, CapitalAccount.id == account_id)
    ).scalar_one_or_none()
    if account is None:
        raise NotFound("Capital account not found")
    return account


def list_active_accounts(
    db: Session,
    *,
    fund_id: uuid.UUID,
    share_class_id: uuid.UUID | None = None,
) -> list[CapitalAccount]:
    stmt = select(CapitalAccount).where(
        CapitalAccount.fund_id == fund_id,
        CapitalAccount.status == CapitalAccountStatus.ACTIVE,
    )
    if share_class_id is not None:
        stmt = stmt.where(CapitalAccount.share_class_id == share_class_id)
    return list(db.execute(stmt.order_by(CapitalAccount.account_number.asc())).scalars().all())


def transactions_through(db: Session, *, account_id: uuid.UUID, as_of: date | None = None) -> list[CapitalTransaction]:
    stmt = select(CapitalTransaction).where(CapitalTransaction.capital_account_id == account_id)
    if as_of is not None:
        stmt = stmt.where(CapitalTransaction.transaction_date <= as_of)
    stmt = stmt.order_by(CapitalTransaction.transaction_date.asc(), CapitalTransaction.sequence.asc())
    return list(db.execute(stmt).scalars().all())


def shares_as_of(db: Session, account: CapitalAccount, as_of: date) -> Decimal:
    total = db.execute(
        select(func.coalesce(func.sum(CapitalTransaction.share_delta), 0)).where(
            CapitalTransaction.capital_account_id == account.id,
            CapitalTransaction.transaction_date <= as_of,
        )
    ).scalar_one()
    return shares(total)


def net_flows_in_period(db: Session, account: CapitalAccount, start: date, end: date) -> PeriodFlows:
    """Sum amounts by type for transactions dated within [start, end]."""
    rows = db.execute(
        select(
            CapitalTransaction.transaction_type,
            func.coalesce(func.sum(CapitalTransaction.amount), 0),
            func.coalesce(func.sum(CapitalTransaction.share_delta), 0),
        )
        .where(
            CapitalTransaction.capital_account_id == account.id,
            CapitalTransaction.transaction_date >= start,
            CapitalTransaction.transaction_date <= end,
        )
        .group_by(CapitalTransaction.transaction_type)
    ).all()

    amounts = {t: ZERO for t in CapitalTransactionType}
    delta = ZERO
    for tx_type, amount, share_delta in rows:
        amounts[CapitalTransactionType(tx_type)] = money(amount)
        delta += to_decimal(share_delta)

    return PeriodFlows(
        contributions=amounts[CapitalTransactionType.CONTRIBUTION],
        distributions=amounts[CapitalTransactionType.DISTRIBUTION],
        fee_debits=amounts[CapitalTransactionType.FEE_DEBIT],
        share_delta=shares(delta),
    )


def _replay(account_id: uuid.UUID, as_of: date, txs: Iterable[CapitalTransaction]) -> AccountState:
    held = ZERO
    cost_basis = ZERO
    contributions = ZERO
    distributions = ZERO
    fee_debits = ZERO
    realized = ZERO

    for tx in txs:
        amount = to_decimal(tx.amount)
        delta = to_decimal(tx.share_delta)

        cost_removed = ZERO
        if delta < 0 and held > 0:
            cost_removed = cost_basis * (-delta) / held

        if tx.transaction_type == CapitalTransactionType.CONTRIBUTION:
            contributions += amount
            cost_basis += amount
        elif tx.transaction_type == CapitalTransactionType.DISTRIBUTION:
            distributions += amount
            cost_basis -= cost_removed
            realized += amount - cost_removed
        else:
            # Shares redeemed to settle a fee were sold at value; gains stay gross of fees.
            fee_debits += amount
            if delta < 0:
                cost_basis -= cost_removed
                realized += amount - cost_removed

        held += delta

    return AccountState(
        account_id=account_id,
        as_of=as_of,
        shares=shares(held),
        cost_basis=money(cost_basis),
        contributions=money(contributions),
        distributions=money(distributions),
        fee_debits=money(fee_debits),
        realized_gain=money(realized),
    )


def replay(db: Session, account: CapitalAccount, as_of: date) -> AccountState:
    return _replay(account.id, as_of, transactions_through(db, account_id=account.id, as_of=as_of))


def snapshot(db: Session, account: CapitalAccount, as_of: date, nav_per_share: Decimal) -> AccountSnapshot:
    state = replay(db, account, as_of)
    market_value = money(state.shares * nav_per_share)
    return AccountSnapshot(
        state=state,
        nav_per_share=nav_per_share,
        market_value=market_value,
        unrealized_gain=money(market_value - state.cost_basis),
    )


def _validate_direction(tx_type: CapitalTransactionType, amount: Decimal, share_delta: Decimal) -> None:
    if amount < 0:
        raise ValidationError("amount must be a non-negative magnitude; transaction_type carries direction")
    if tx_type == CapitalTransactionType.CONTRIBUTION and share_delta < 0:
        raise ValidationError("contribution cannot reduce shares")
    if tx_type in (CapitalTransactionType.DISTRIBUTION, CapitalTransactionType.FEE_DEBIT) and share_delta > 0:
        raise ValidationError(f"{tx_type.value} cannot increase shares")


def _check_shares_never_negative(
    existing: list[CapitalTransaction],
    *,
    tx_date: date,
    share_delta: Decimal,
) -> None:
    """Replay with the candidate appended after same-date rows; no running total from it onward may go negative."""
    running = ZERO
    inserted = False
    for tx in existing:
        if not inserted and tx.transaction_date > tx_date:
            running += share_delta
            inserted = True
            if running < 0:
                raise InvariantViolation(
                    f"Transaction on {tx_date.isoformat()} would drive shares negative ({shares(running)})"
                )
        running += to_decimal(tx.share_delta)
        if inserted and running < 0:
            raise InvariantViolation(
                f"Transaction on {tx_date.isoformat()} would drive shares negative on "
                f"{tx.transaction_date.isoformat()} ({shares(running)})"
            )
    if not inserted:
        running += share_delta
        if running < 0:
            raise InvariantViolation(
                f"Transaction on {tx_date.isoformat()} would drive shares negative ({shares(running)})"
            )


def append_transaction(
    db: Session,
    *,
    account: CapitalAccount,
    transaction_type: CapitalTransactionType,
    transaction_date: date,
    amount,
    share_delta=ZERO,
    reference: str | None = None,
    description: str | None = None,
    actor_id: str | None = None,
    commit: bool = True,
) -> CapitalTransaction:
    """Validate and append one capital transaction to the account's log."""
    tx_type = CapitalTransactionType(transaction_type)
    amount = money(amount)
    share_delta = shares(share_delta)

    if account.status != CapitalAccountStatus.ACTIVE:
        raise ValidationError("Cannot post transactions to a closed capital account")
    if transaction_date < account.inception_date:
        raise ValidationError(
            f"transaction_date {transaction_date.isoformat()} predates account inception "
            f"{account.inception_date.isoformat()}"
        )
    _validate_direction(tx_type, amount, share_delta)

    existing = transactions_through(db, account_id=account.id)
    _check_shares_never_negative(existing, tx_date=transaction_date, share_delta=share_delta)

    next_sequence = max((tx.sequence for tx in existing), default=0) + 1
    tx = CapitalTransaction(
        fund_id=account.fund_id,
        access_level="internal",
        capital_account_id=account.id,
        transaction_type=tx_type,
        transaction_date=transaction_date,
        sequence=next_sequence,
        amount=amount,
        share_delta=share_delta,
        reference=reference,
        description=description,
        created_by=actor_id,
    )
    db.add(tx)
    db.flush()

    audit_row(db, tx, action="CAPITAL_TRANSACTION_APPENDED", entity_type="capital_transaction", actor_id=actor_id)
    logger.info(
        "capital_ledger.transaction.appended",
        fund_id=str(account.fund_id),
        account_id=str(account.id),
        transaction_type=tx_type.value,
        sequence=next_sequence,
    )
    if commit:
        db.commit()
        db.refresh(tx)
    return tx


def audit_account(db: Session, account: CapitalAccount) -> LedgerAuditReport:
    """Full replay of the log; flags any date on which running shares were negative."""
    report = LedgerAuditReport(account_id=account.id)
    running = ZERO
    for tx in transactions_through(db, account_id=account.id):
        report.transaction_count += 1
        running += to_decimal(tx.share_delta)
        if running < 0 and tx.transaction_date not in report.negative_share_dates:
            report.negative_share_dates.append(tx.transaction_date)
    report.final_shares = shares(running)
    if not report.ok:
        logger.warning(
            "capital_ledger.audit.negative_shares",
            account_id=str(account.id),
            dates=[d.isoformat() for d in report.negative_share_dates],
        )
    return report
