from decimal import Decimal

import pytest

from drawdesk.models import DrawStatus


@pytest.mark.anyio
async def test_fund_draw_records_spend_once(client, db_session, make_project, make_budget, make_draw):
    project = make_project()
    budget = make_budget(project, "Framing", current="20000")
    draw = make_draw(project, (budget, "5000"))

    response = await client.post(f"/draws/{draw.id}/fund", params={"actor": "ops"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["newly_funded"] is True
    assert payload["draw"]["status"] == "funded"
    assert payload["draw"]["funded_at"] is not None
    assert payload["spend"]["updated_count"] == 1
    db_session.refresh(budget)
    assert budget.spent_amount == Decimal("5000")

    again = await client.post(f"/draws/{draw.id}/fund")

    assert again.status_code == 200
    assert again.json()["newly_funded"] is False
    assert again.json()["spend"] == {"draw_request_id": draw.id, "updated_count": 0, "skipped_count": 1}
    db_session.refresh(budget)
    assert budget.spent_amount == Decimal("5000")


@pytest.mark.anyio
async def test_fund_rejected_draw_conflicts(client, make_project, make_budget, make_draw):
    project = make_project()
    draw = make_draw(project, (make_budget(project, "Framing"), "5000"), status=DrawStatus.REJECTED)

    response = await client.post(f"/draws/{draw.id}/fund")

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "DRAW_REJECTED"


@pytest.mark.anyio
async def test_fund_unknown_draw(client):
    response = await client.post("/draws/999999/fund")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "DRAW_NOT_FOUND"


@pytest.mark.anyio
async def test_recalculate_budget_requires_funded_draw(client, make_project, make_budget, make_draw):
    project = make_project()
    draw = make_draw(project, (make_budget(project, "Framing"), "5000"))

    response = await client.post(f"/draws/{draw.id}/recalculate-budget")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "DRAW_NOT_FUNDED"


@pytest.mark.anyio
async def test_recalculate_budget_for_funded_draw(client, make_project, make_budget, make_draw):
    project = make_project()
    draw = make_draw(project, (make_budget(project, "Framing"), "5000"), status=DrawStatus.FUNDED)

    response = await client.post(f"/draws/{draw.id}/recalculate-budget")

    assert response.status_code == 200
    assert response.json()["updated_count"] == 1


@pytest.mark.anyio
async def test_budget_diagnostics(client, make_project, make_budget, make_draw):
    project = make_project()
    budget = make_budget(project, "Framing")
    draw = make_draw(project, (budget, "5000"), (None, "700"), draw_number=3)

    response = await client.get(f"/draws/{draw.id}/recalculate-budget")

    assert response.status_code == 200
    payload = response.json()
    assert payload["draw_number"] == 3
    assert payload["status"] == "submitted"
    assert payload["total_lines"] == 2
    assert payload["lines_with_budget"] == 1
    assert payload["lines_without_budget"] == 1
    assert payload["lines"][0]["budget_category"] == "Framing"
    assert payload["lines"][0]["already_recorded"] is False
