"""API endpoint tests.

Runs the FastAPI app in-process against the in-memory test database.
"""

from datetime import date, timedelta
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from absence_engine.api.app import create_app
from absence_engine.api.dependencies import get_codec, get_db_session

START = date.today() - timedelta(days=2)


@pytest.fixture
async def client(
    session, session_factory, codec, organisation, other_organisation, employee, manager
):
    """HTTP client with database and codec dependencies overridden."""
    # Fixture rows must be committed before request sessions can see them
    await session.commit()

    app = create_app()

    async def override_db():
        async with session_factory() as request_session:
            yield request_session

    app.dependency_overrides[get_db_session] = override_db
    app.dependency_overrides[get_codec] = lambda: codec

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def headers(organisation, actor_id) -> dict[str, str]:
    return {"X-Organisation-ID": str(organisation.id), "X-User-ID": str(actor_id)}


@pytest.fixture
def other_headers(other_organisation, actor_id) -> dict[str, str]:
    return {"X-Organisation-ID": str(other_organisation.id), "X-User-ID": str(actor_id)}


@pytest.fixture
def report(client, headers, employee):
    async def _report(**overrides):
        payload = {
            "employee_id": str(employee.id),
            "absence_type": "respiratory",
            "absence_start_date": START.isoformat(),
            **overrides,
        }
        return await client.post("/api/v1/sickness-cases", headers=headers, json=payload)

    return _report


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"

    async def test_liveness_check(self, client: AsyncClient):
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestHeaders:
    """Test organisation and actor header handling."""

    async def test_missing_organisation_header(self, client: AsyncClient):
        response = await client.get("/api/v1/sickness-cases")
        assert response.status_code == 400

    async def test_invalid_organisation_header(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/sickness-cases", headers={"X-Organisation-ID": "not-a-uuid"}
        )
        assert response.status_code == 400

    async def test_missing_user_header(self, client: AsyncClient, organisation, employee):
        response = await client.post(
            "/api/v1/sickness-cases",
            headers={"X-Organisation-ID": str(organisation.id)},
            json={
                "employee_id": str(employee.id),
                "absence_type": "other",
                "absence_start_date": START.isoformat(),
            },
        )
        assert response.status_code == 400


class TestSicknessCaseEndpoints:
    """Test case reporting and retrieval."""

    async def test_report_absence(self, report):
        response = await report(notes="Flu symptoms")
        assert response.status_code == 201

        data = response.json()
        assert data["case"]["status"] == "REPORTED"
        assert data["milestone_action_count"] == 19
        assert data["alert_count"] == 0
        assert "notes" not in data["case"]

    async def test_detail_decrypts_notes(self, client, headers, report):
        case_id = (await report(notes="Flu symptoms")).json()["case"]["id"]

        response = await client.get(f"/api/v1/sickness-cases/{case_id}", headers=headers)

        assert response.status_code == 200
        assert response.json()["notes"] == "Flu symptoms"
        assert response.json()["available_actions"] == ["acknowledge"]

    async def test_end_before_start_rejected(self, report):
        response = await report(absence_end_date=(START - timedelta(days=1)).isoformat())
        assert response.status_code == 422

    async def test_unknown_employee(self, report):
        response = await report(employee_id=str(uuid4()))

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_other_organisation_cannot_read(self, client, other_headers, report):
        case_id = (await report()).json()["case"]["id"]

        response = await client.get(f"/api/v1/sickness-cases/{case_id}", headers=other_headers)
        assert response.status_code == 404

    async def test_list_cases(self, client, headers, report):
        await report()

        response = await client.get("/api/v1/sickness-cases", headers=headers)
        assert len(response.json()) == 1

        response = await client.get(
            "/api/v1/sickness-cases", headers=headers, params={"status": "CLOSED"}
        )
        assert response.json() == []

    async def test_update_end_date(self, client, headers, report):
        case_id = (await report(absence_start_date="2024-02-26")).json()["case"]["id"]

        response = await client.patch(
            f"/api/v1/sickness-cases/{case_id}/end-date",
            headers=headers,
            json={"absence_end_date": "2024-03-01"},
        )

        assert response.status_code == 200
        assert response.json()["working_days_lost"] == 5


class TestWorkflowEndpoints:
    """Test lifecycle transitions over HTTP."""

    async def test_transition(self, client, headers, report):
        case_id = (await report()).json()["case"]["id"]

        response = await client.post(
            f"/api/v1/sickness-cases/{case_id}/transitions",
            headers=headers,
            json={"action": "acknowledge"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "TRACKING"

        response = await client.get(
            f"/api/v1/sickness-cases/{case_id}/transitions", headers=headers
        )
        assert [t["to_status"] for t in response.json()] == ["REPORTED", "TRACKING"]

    async def test_illegal_transition_conflict(self, client, headers, report):
        case_id = (await report()).json()["case"]["id"]

        response = await client.post(
            f"/api/v1/sickness-cases/{case_id}/transitions",
            headers=headers,
            json={"action": "close_case"},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    async def test_unknown_action_rejected(self, client, headers, report):
        case_id = (await report()).json()["case"]["id"]

        response = await client.post(
            f"/api/v1/sickness-cases/{case_id}/transitions",
            headers=headers,
            json={"action": "escalate"},
        )
        assert response.status_code == 422


class TestMilestoneEndpoints:
    """Test timelines, catalog overrides and milestone actions."""

    async def test_timeline(self, client, headers, report):
        case_id = (await report(absence_start_date="2024-01-01")).json()["case"]["id"]

        response = await client.get(
            f"/api/v1/sickness-cases/{case_id}/timeline",
            headers=headers,
            params={"today": "2024-01-02"},
        )

        entries = response.json()
        assert len(entries) == 19
        assert entries[0]["milestone_key"] == "DAY_1"
        assert entries[0]["status"] == "DUE_TODAY"
        assert entries[1]["status"] == "UPCOMING"

    async def test_completing_day_1_acknowledges(self, client, headers, report):
        case_id = (await report()).json()["case"]["id"]
        actions = (
            await client.get(f"/api/v1/sickness-cases/{case_id}/milestone-actions", headers=headers)
        ).json()
        day_1 = next(a for a in actions if a["milestone_key"] == "DAY_1")

        response = await client.patch(
            f"/api/v1/milestone-actions/{day_1['id']}",
            headers=headers,
            json={"status": "COMPLETED", "notes": "Called employee"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["action"]["status"] == "COMPLETED"
        assert data["transition_applied"] == "acknowledge"
        assert data["case_status"] == "TRACKING"

    async def test_override_lifecycle(self, client, headers):
        response = await client.put(
            "/api/v1/milestones",
            headers=headers,
            json={"milestone_key": "DAY_3", "label": "Day 3 - Call", "day_offset": 2},
        )
        assert response.status_code == 200
        config_id = response.json()["id"]

        catalog = (await client.get("/api/v1/milestones", headers=headers)).json()
        day_3 = next(c for c in catalog if c["milestone_key"] == "DAY_3")
        assert day_3["day_offset"] == 2
        assert day_3["is_default"] is False

        response = await client.delete(f"/api/v1/milestones/{config_id}", headers=headers)
        assert response.status_code == 204

        response = await client.delete(f"/api/v1/milestones/{config_id}", headers=headers)
        assert response.status_code == 404

    async def test_outstanding_actions(self, client, headers, report):
        await report()

        response = await client.get(
            "/api/v1/milestone-actions/outstanding",
            headers=headers,
            params={"today": (START + timedelta(days=3)).isoformat()},
        )

        assert [a["milestone_key"] for a in response.json()] == ["DAY_1", "DAY_3"]


class TestTriggerEndpoints:
    """Test rules, alerts and the Bradford Factor over HTTP."""

    async def test_rule_and_alert_flow(self, client, headers, report):
        response = await client.post(
            "/api/v1/triggers",
            headers=headers,
            json={
                "name": "Any absence",
                "trigger_type": "FREQUENCY",
                "threshold_value": 1,
                "period_days": 30,
            },
        )
        assert response.status_code == 201

        created = (await report()).json()
        assert created["alert_count"] == 1

        alerts = (
            await client.get(
                "/api/v1/trigger-alerts", headers=headers, params={"unacknowledged": True}
            )
        ).json()
        assert len(alerts) == 1

        response = await client.post(
            f"/api/v1/trigger-alerts/{alerts[0]['id']}/acknowledge", headers=headers
        )
        assert response.status_code == 200
        assert response.json()["acknowledged_at"] is not None

    async def test_invalid_rule_update(self, client, headers):
        rule = (
            await client.post(
                "/api/v1/triggers",
                headers=headers,
                json={"name": "Bradford 200", "trigger_type": "BRADFORD_FACTOR", "threshold_value": 200},
            )
        ).json()

        response = await client.patch(
            f"/api/v1/triggers/{rule['id']}",
            headers=headers,
            json={"trigger_type": "FREQUENCY"},
        )

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_bradford_factor(self, client, headers, report, employee):
        await report(absence_start_date="2024-01-08", absence_end_date="2024-01-12")

        response = await client.get(
            f"/api/v1/employees/{employee.id}/bradford-factor",
            headers=headers,
            params={"today": "2024-03-04"},
        )

        assert response.status_code == 200
        assert response.json()["score"] == 5
        assert response.json()["risk_level"] == "Low"

    async def test_bradford_other_organisation(self, client, other_headers, employee):
        response = await client.get(
            f"/api/v1/employees/{employee.id}/bradford-factor", headers=other_headers
        )
        assert response.status_code == 404
