from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.domain.carry.enums import WaterfallType
from app.domain.carry.models import WaterfallStructure
from app.domain.carry.services import carry_engine
from app.domain.fees.enums import FeeCalculationMethod, FeeFrequency, FeeType
from app.domain.fees.models import FeeSchedule
from app.domain.ledger.enums import CapitalTransactionType


def test_append_transaction_and_snapshot(client: TestClient, seeded_fund: dict, account, add_nav):
    fund_id = seeded_fund["fund_id"]
    add_nav(date(2025, 1, 31), "105")

    r = client.post(
        f"/funds/{fund_id}/capital-accounts/{account.id}/transactions",
        json={
            "transaction_type": "contribution",
            "transaction_date": "2025-01-10",
            "amount": "100000",
            "share_delta": "1000",
        },
    )
    assert r.status_code == 201, r.text
    assert r.json()["sequence"] == 1

    snap = client.get(
        f"/funds/{fund_id}/capital-accounts/{account.id}/snapshot", params={"as_of": "2025-01-31"}
    )
    assert snap.status_code == 200
    body = snap.json()
    assert Decimal(body["shares"]) == Decimal("1000")
    assert Decimal(body["market_value"]) == Decimal("105000")
    assert Decimal(body["unrealized_gain"]) == Decimal("5000")


def test_invariant_violation_maps_to_422(client: TestClient, seeded_fund: dict, account):
    r = client.post(
        f"/funds/{seeded_fund['fund_id']}/capital-accounts/{account.id}/transactions",
        json={
            "transaction_type": "distribution",
            "transaction_date": "2025-01-10",
            "amount": "100",
            "share_delta": "-1",
        },
    )
    assert r.status_code == 422
    assert "negative" in r.json()["detail"]


def test_unknown_account_is_404(client: TestClient, seeded_fund: dict):
    r = client.get(
        f"/funds/{seeded_fund['fund_id']}/capital-accounts/{uuid.uuid4()}/snapshot", params={"as_of": "2025-01-31"}
    )
    assert r.status_code == 404


def test_period_close_fees_and_statements(
    client: TestClient, db_session: Session, seeded_fund: dict, fund_id, account, post_tx, add_nav
):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 100_000, 1_000)
    add_nav(date(2024, 12, 31), "100")
    add_nav(date(2025, 1, 31), "100")
    db_session.add(
        FeeSchedule(
            fund_id=fund_id,
            fee_name="Management",
            fee_type=FeeType.MANAGEMENT,
            calculation_method=FeeCalculationMethod.PCT_OF_NAV,
            annual_rate=Decimal("0.02"),
            frequency=FeeFrequency.MONTHLY,
            start_date=date(2024, 1, 1),
        )
    )
    db_session.commit()

    r = client.post(f"/funds/{fund_id}/period-close", json={"period_start": "2025-01-01", "period_end": "2025-01-31"})
    assert r.status_code == 200, r.text
    summary = r.json()
    assert summary["status"] == "completed"
    assert [s["stage"] for s in summary["stages"]] == ["fees", "carry", "statements"]

    run = client.get(f"/funds/{fund_id}/period-close/{summary['run_id']}")
    assert run.status_code == 200
    assert run.json()["status"] == "completed"

    fees = client.get(f"/funds/{fund_id}/fees").json()
    assert len(fees) == 1
    assert Decimal(fees[0]["fee_amount"]) == Decimal("166.67")

    over = client.post(
        f"/funds/{fund_id}/fees/{fees[0]['id']}/pay", json={"paid_amount": "500", "paid_date": "2025-02-05"}
    )
    assert over.status_code == 400

    invoiced = client.post(f"/funds/{fund_id}/fees/{fees[0]['id']}/invoice")
    assert invoiced.status_code == 200
    assert invoiced.json()["status"] == "invoiced"

    statements = client.get(f"/funds/{fund_id}/statements", params={"period_end": "2025-01-31"}).json()
    assert len(statements) == 1
    statement_id = statements[0]["id"]

    assert client.post(f"/funds/{fund_id}/statements/{statement_id}/finalize").status_code == 200
    regen = client.post(
        f"/funds/{fund_id}/statements",
        json={"capital_account_id": str(account.id), "period_start": "2025-01-01", "period_end": "2025-01-31"},
    )
    assert regen.status_code == 409


def test_period_close_without_nav_is_412(client: TestClient, seeded_fund: dict, account):
    r = client.post(
        f"/funds/{seeded_fund['fund_id']}/period-close",
        json={"period_start": "2025-01-01", "period_end": "2025-01-31"},
    )
    assert r.status_code == 412


def test_carry_clawback_flow(client: TestClient, db_session: Session, seeded_fund: dict, fund_id):
    structure = WaterfallStructure(
        fund_id=fund_id,
        structure_name="European",
        waterfall_type=WaterfallType.EUROPEAN,
        carry_rate=Decimal("0.20"),
    )
    db_session.add(structure)
    db_session.commit()
    account = carry_engine.create_carry_account(
        db_session, fund_id=fund_id, waterfall_structure_id=structure.id, gp_entity_name="GP LLC"
    )
    carry_engine.record_waterfall_calculation(
        db_session,
        fund_id=fund_id,
        waterfall_structure_id=structure.id,
        calculation_date=date(2025, 12, 31),
        total_contributions="5000000",
        total_distributions="0",
        current_nav="6000000",
        lp_allocation="5580000",
        gp_allocation="420000",
    )
    base = f"/funds/{fund_id}/carry"

    r = client.post(f"{base}/accounts/{account.id}/distributions", json={"amount": "500000"})
    assert r.status_code == 200
    assert Decimal(r.json()["total_carry_distributed"]) == Decimal("500000")

    r = client.post(f"{base}/accounts/{account.id}/clawback", json={"calculation_date": "2025-12-31"})
    assert r.status_code == 200
    provision = r.json()["provision"]
    assert Decimal(provision["clawback_amount"]) == Decimal("80000")
    assert provision["status"] == "calculated"

    assert client.post(f"{base}/clawbacks/{provision['id']}/notify").status_code == 200
    paid = client.post(
        f"{base}/clawbacks/{provision['id']}/pay", json={"amount_paid": "80000", "payment_date": "2026-01-15"}
    )
    assert paid.status_code == 200
    assert paid.json()["status"] == "paid"


def test_tax_documents_over_http(client: TestClient, seeded_fund: dict, account, post_tx):
    fund_id = seeded_fund["fund_id"]
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 100_000, 1_000)
    post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2025, 6, 30), 1_000, -10)

    missing = client.post(f"/funds/{fund_id}/tax/documents/generate", json={"tax_year": 2025})
    assert missing.status_code == 412

    bad = client.post(
        f"/funds/{fund_id}/tax/characterizations",
        json={"tax_year": 2025, "ordinary_income_fraction": "0.5"},
    )
    assert bad.status_code == 400

    r = client.post(
        f"/funds/{fund_id}/tax/characterizations",
        json={"tax_year": 2025, "ordinary_income_fraction": "0.6", "long_term_gains_fraction": "0.4"},
    )
    assert r.status_code == 201

    gen = client.post(f"/funds/{fund_id}/tax/documents/generate", json={"tax_year": 2025})
    assert gen.status_code == 200
    assert gen.json()["processed"] == 1

    docs = client.get(f"/funds/{fund_id}/tax/documents", params={"tax_year": 2025}).json()
    assert Decimal(docs[0]["ordinary_income"]) == Decimal("600")
    assert Decimal(docs[0]["long_term_gains"]) == Decimal("400")
