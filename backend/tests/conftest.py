from __future__ import annotations

import os
import sys
import json
import uuid
from collections.abc import Callable, Generator
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import Session, sessionmaker

# Make `backend/` importable regardless of pytest import mode.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.core.config import settings
from app.core.db.base import Base
from app.core.db.models import Fund
from app.core.db.session import get_db, import_model_modules
from app.domain.ledger.enums import CapitalAccountStatus, CapitalTransactionType
from app.domain.ledger.models import CapitalAccount, NAVMark, ShareClass
from app.domain.ledger.services import capital_ledger
from app.main import create_app
from app.shared.enums import Env

# Ensure model modules are imported so Base.metadata is complete.
import_model_modules()


def dev_actor_header(actor_id: str, roles: list[str], fund_ids: list[uuid.UUID]) -> str:
    return json.dumps({"actor_id": actor_id, "roles": roles, "fund_ids": [str(x) for x in fund_ids]})


@pytest.fixture()
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(db_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(bind=db_engine, autoflush=False, autocommit=False, class_=Session)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db_session: Session) -> TestClient:
    settings.env = Env.dev
    app = create_app()

    def _override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    return TestClient(app)


@pytest.fixture()
def fund_id(db_session: Session) -> uuid.UUID:
    fid = uuid.uuid4()
    db_session.add(Fund(id=fid, name=f"Fund {fid.hex[:8]}"))
    db_session.commit()
    return fid


@pytest.fixture()
def seeded_fund(client: TestClient, fund_id: uuid.UUID) -> dict:
    # Default client header so tests can call routes without passing headers.
    client.headers.update({"X-DEV-ACTOR": dev_actor_header("seed-user", ["ADMIN"], [fund_id])})
    return {"fund_id": str(fund_id)}


@pytest.fixture()
def share_class(db_session: Session, fund_id: uuid.UUID) -> ShareClass:
    sc = ShareClass(
        fund_id=fund_id,
        class_code="A",
        class_name="Class A",
        currency="USD",
        management_fee_rate=Decimal("0.02"),
        performance_fee_rate=Decimal("0.20"),
        hurdle_rate=Decimal("0"),
        high_water_mark=True,
        share_price_precision=4,
    )
    db_session.add(sc)
    db_session.commit()
    return sc


@pytest.fixture()
def make_account(db_session: Session, fund_id: uuid.UUID, share_class: ShareClass) -> Callable[..., CapitalAccount]:
    counter = {"n": 0}

    def _make(
        *,
        inception_date: date = date(2024, 1, 1),
        commitment_amount: Decimal = Decimal("1000000"),
        status: CapitalAccountStatus = CapitalAccountStatus.ACTIVE,
    ) -> CapitalAccount:
        counter["n"] += 1
        account = CapitalAccount(
            fund_id=fund_id,
            share_class_id=share_class.id,
            investor_id=uuid.uuid4(),
            account_number=f"ACC-{counter['n']:04d}-{fund_id.hex[:6]}",
            commitment_amount=commitment_amount,
            inception_date=inception_date,
            status=status,
        )
        db_session.add(account)
        db_session.commit()
        return account

    return _make


@pytest.fixture()
def account(make_account) -> CapitalAccount:
    return make_account()


@pytest.fixture()
def add_nav(db_session: Session, fund_id: uuid.UUID, share_class: ShareClass) -> Callable[..., NAVMark]:
    def _add(
        calculation_date: date,
        nav_per_share,
        *,
        class_level: bool = True,
        version: int = 1,
    ) -> NAVMark:
        mark = NAVMark(
            fund_id=fund_id,
            share_class_id=share_class.id if class_level else None,
            calculation_date=calculation_date,
            version=version,
            nav_per_share=Decimal(str(nav_per_share)),
            total_shares_outstanding=Decimal("0"),
        )
        db_session.add(mark)
        db_session.commit()
        return mark

    return _add


@pytest.fixture()
def post_tx(db_session: Session) -> Callable[..., object]:
    def _post(
        account: CapitalAccount,
        transaction_type: CapitalTransactionType,
        transaction_date: date,
        amount,
        share_delta=0,
    ):
        return capital_ledger.append_transaction(
            db_session,
            account=account,
            transaction_type=transaction_type,
            transaction_date=transaction_date,
            amount=Decimal(str(amount)),
            share_delta=Decimal(str(share_delta)),
            actor_id="test",
        )

    return _post
