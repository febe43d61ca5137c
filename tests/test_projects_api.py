from datetime import date
from decimal import Decimal

import pytest

from drawdesk.models import DrawStatus


@pytest.fixture
def funded_project(make_project, make_budget, make_draw):
    project = make_project(loan_start_date=date(2026, 1, 1), interest_rate_annual="0.10")
    budget = make_budget(project, "Framing", current="150000")
    make_draw(project, (budget, "100000"), status=DrawStatus.FUNDED, request_date=date(2026, 2, 1))
    make_draw(project, (budget, "30000"), draw_number=2, request_date=date(2026, 3, 1))
    return project


@pytest.mark.anyio
async def test_amortization_uses_funded_draws_only(client, funded_project):
    response = await client.get(
        f"/projects/{funded_project.id}/amortization", params={"payoff_date": "2026-04-01"}
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["project_id"] == funded_project.id
    assert [row["type"] for row in payload["schedule"]] == ["draw", "payoff"]
    payoff = payload["schedule"][-1]
    assert payoff["days"] == 59
    assert Decimal(payoff["interest"]) == Decimal("1616.44")
    assert Decimal(payload["summary"]["max_principal"]) == Decimal("100000")


@pytest.mark.anyio
async def test_payoff_breakdown(client, funded_project):
    response = await client.get(f"/projects/{funded_project.id}/payoff", params={"payoff_date": "2026-08-15"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["month_number"] == 8
    assert Decimal(payload["fee_rate"]) == Decimal("0.025")
    assert Decimal(payload["finance_fee"]) == Decimal("12500.00")
    assert Decimal(payload["principal_balance"]) == Decimal("100000")
    assert payload["good_through_date"] == "2026-08-15"


@pytest.mark.anyio
async def test_simulate_draw_is_not_persisted(client, funded_project):
    response = await client.post(
        f"/projects/{funded_project.id}/amortization/simulate",
        json={"amount": "25000", "date": date.today().isoformat()},
    )

    assert response.status_code == 200
    descriptions = [row["description"] for row in response.json()["schedule"]]
    assert "Simulated Draw" in descriptions
    simulated = next(row for row in response.json()["schedule"] if row["description"] == "Simulated Draw")
    assert Decimal(simulated["balance"]) == Decimal("125000")

    real = await client.get(f"/projects/{funded_project.id}/amortization")
    assert "Simulated Draw" not in [row["description"] for row in real.json()["schedule"]]


@pytest.mark.anyio
async def test_simulate_rejects_non_positive_amount(client, funded_project):
    response = await client.post(
        f"/projects/{funded_project.id}/amortization/simulate",
        json={"amount": "0", "date": "2026-05-01"},
    )

    assert response.status_code == 422


@pytest.mark.anyio
async def test_fee_schedule(client, funded_project):
    response = await client.get(f"/projects/{funded_project.id}/fee-schedule")

    assert response.status_code == 200
    payload = response.json()
    assert len(payload["schedule"]) == 18
    assert payload["schedule"][0]["month"] == 1
    assert payload["current"] is not None
    assert payload["days_to_maturity"] is not None


@pytest.mark.anyio
async def test_fee_schedule_without_start_date(client, make_project):
    project = make_project()

    response = await client.get(f"/projects/{project.id}/fee-schedule")

    assert response.status_code == 200
    assert response.json()["schedule"] == []


@pytest.mark.anyio
async def test_loan_income(client, funded_project):
    response = await client.get(f"/projects/{funded_project.id}/loan-income")

    assert response.status_code == 200
    payload = response.json()
    assert Decimal(payload["fee"]) == Decimal("10000.00")
    assert payload["irr"] is None


@pytest.mark.anyio
async def test_projection(client, funded_project):
    response = await client.get(f"/projects/{funded_project.id}/projection")

    assert response.status_code == 200
    points = response.json()
    assert len(points) == 18
    assert Decimal(points[0]["principal_balance"]) == Decimal("0")
    assert Decimal(points[1]["principal_balance"]) == Decimal("100000")


@pytest.mark.anyio
async def test_anomaly_report(client, make_project, make_budget):
    project = make_project()
    make_budget(project, "Framing", current="10000", spent="13000")

    response = await client.get(f"/projects/{project.id}/anomalies")

    assert response.status_code == 200
    payload = response.json()
    assert payload["project_id"] == project.id
    assert payload["counts"]["critical"] >= 1
    assert any(item["severity"] == "critical" for item in payload["anomalies"])


@pytest.mark.anyio
async def test_unknown_project(client):
    response = await client.get("/projects/999999/amortization")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "PROJECT_NOT_FOUND"
