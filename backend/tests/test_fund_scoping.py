from __future__ import annotations

import json
import uuid

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.core.db.models import Fund


def dev_actor_header(actor_id: str, roles: list[str], fund_ids: list[uuid.UUID]) -> str:
    return json.dumps({"actor_id": actor_id, "roles": roles, "fund_ids": [str(x) for x in fund_ids]})


def test_fund_scoping_list_endpoints(client: TestClient, db_session: Session):
    fund1 = uuid.uuid4()
    fund2 = uuid.uuid4()

    # Funds are global entities; for realism we persist them.
    db_session.add(Fund(id=fund1, name="Fund 1"))
    db_session.add(Fund(id=fund2, name="Fund 2"))
    db_session.commit()

    headers = {"X-DEV-ACTOR": dev_actor_header("u1", ["GP"], [fund1])}

    r1 = client.get(f"/funds/{fund1}/statements", headers=headers)
    assert r1.status_code == 200
    assert r1.json() == []

    # Accessing a different fund should be forbidden (tenant isolation).
    r2 = client.get(f"/funds/{fund2}/statements", headers=headers)
    assert r2.status_code == 403


def test_missing_actor_is_unauthorized(client: TestClient, db_session: Session):
    fund = uuid.uuid4()
    db_session.add(Fund(id=fund, name="Fund 3"))
    db_session.commit()

    r = client.get(f"/funds/{fund}/fees")
    assert r.status_code == 401


def test_investor_cannot_write(client: TestClient, db_session: Session):
    fund = uuid.uuid4()
    db_session.add(Fund(id=fund, name="Fund 4"))
    db_session.commit()

    headers = {"X-DEV-ACTOR": dev_actor_header("lp-1", ["INVESTOR"], [fund])}
    r = client.post(
        f"/funds/{fund}/period-close",
        json={"period_start": "2025-01-01", "period_end": "2025-01-31"},
        headers=headers,
    )
    assert r.status_code == 403


def test_fund_admin_cannot_run_period_close(client: TestClient, db_session: Session):
    fund = uuid.uuid4()
    db_session.add(Fund(id=fund, name="Fund 5"))
    db_session.commit()

    headers = {"X-DEV-ACTOR": dev_actor_header("ops-1", ["FUND_ADMIN"], [fund])}
    r = client.post(
        f"/funds/{fund}/period-close",
        json={"period_start": "2025-01-01", "period_end": "2025-01-31"},
        headers=headers,
    )
    assert r.status_code == 403

    r_fees = client.get(f"/funds/{fund}/fees", headers=headers)
    assert r_fees.status_code == 200
