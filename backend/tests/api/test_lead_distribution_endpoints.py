"""Integration tests for lead and lead distribution endpoints."""

from uuid import UUID

import pytest
from sqlalchemy import select

from leadflow.models.lead import Lead
from leadflow.models.user import UserRole


@pytest.mark.api
class TestDistributionConfigEndpoints:
    async def test_get_default_config(self, async_client, auth_headers):
        response = await async_client.get("/api/v1/lead-distribution/config", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["enabled"] is False
        assert data["method"] == "round_robin"
        assert data["last_assigned_index"] == 0

    async def test_manager_saves_config(self, async_client, manager_headers):
        response = await async_client.put(
            "/api/v1/lead-distribution/config",
            headers=manager_headers,
            json={
                "enabled": True,
                "method": "load_balanced",
                "eligible_roles": ["user"],
                "max_leads_per_rep": 5,
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["enabled"] is True
        assert data["method"] == "load_balanced"
        assert data["eligible_roles"] == ["user"]
        assert data["max_leads_per_rep"] == 5

    async def test_rep_cannot_save_config(self, async_client, auth_headers):
        response = await async_client.put(
            "/api/v1/lead-distribution/config",
            headers=auth_headers,
            json={"enabled": True, "method": "round_robin"},
        )
        assert response.status_code == 403

    async def test_invalid_method_rejected(self, async_client, manager_headers):
        response = await async_client.put(
            "/api/v1/lead-distribution/config",
            headers=manager_headers,
            json={"enabled": True, "method": "alphabetical"},
        )
        assert response.status_code == 422

    async def test_invalid_cap_rejected(self, async_client, manager_headers):
        response = await async_client.put(
            "/api/v1/lead-distribution/config",
            headers=manager_headers,
            json={"enabled": True, "method": "load_balanced", "max_leads_per_rep": 0},
        )
        assert response.status_code == 422

    async def test_eligible_reps(self, async_client, manager_headers, manager_user, test_user, make_user, test_organization):
        await make_user(test_organization, "admin@example.com", UserRole.ADMIN)

        response = await async_client.get(
            "/api/v1/lead-distribution/eligible-reps", headers=manager_headers
        )

        assert response.status_code == 200
        ids = {UUID(rep["id"]) for rep in response.json()}
        assert ids == {manager_user.id, test_user.id}


@pytest.mark.api
class TestDistributeEndpoint:
    async def test_distribute_round_robin(
        self, async_client, manager_headers, manager_user, test_user, auth_headers
    ):
        await async_client.put(
            "/api/v1/lead-distribution/config",
            headers=manager_headers,
            json={"enabled": False, "method": "round_robin"},
        )
        for i in range(4):
            created = await async_client.post(
                "/api/v1/leads/", headers=auth_headers, json={"first_name": f"Lead{i}"}
            )
            assert created.status_code == 201
            assert created.json()["assigned_to"] is None

        await async_client.put(
            "/api/v1/lead-distribution/config",
            headers=manager_headers,
            json={"enabled": True, "method": "round_robin"},
        )
        response = await async_client.post(
            "/api/v1/lead-distribution/distribute", headers=manager_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["assigned_count"] == 4
        assert data["skipped_count"] == 0
        assert data["errors"] == []
        per_rep = {}
        for item in data["assigned_leads"]:
            per_rep[item["user_id"]] = per_rep.get(item["user_id"], 0) + 1
        assert per_rep == {str(manager_user.id): 2, str(test_user.id): 2}

    async def test_no_eligible_reps(self, async_client, manager_headers, auth_headers):
        await async_client.put(
            "/api/v1/lead-distribution/config",
            headers=manager_headers,
            json={"enabled": False, "method": "round_robin", "eligible_roles": ["admin"]},
        )
        await async_client.post("/api/v1/leads/", headers=auth_headers, json={"first_name": "A"})
        await async_client.put(
            "/api/v1/lead-distribution/config",
            headers=manager_headers,
            json={"enabled": True, "method": "round_robin", "eligible_roles": ["admin"]},
        )

        response = await async_client.post(
            "/api/v1/lead-distribution/distribute", headers=manager_headers
        )

        assert response.status_code == 409
        assert response.json()["code"] == "no_eligible_reps"

    async def test_disabled_distribution_is_noop(self, async_client, manager_headers, auth_headers):
        await async_client.post("/api/v1/leads/", headers=auth_headers, json={"first_name": "A"})

        response = await async_client.post(
            "/api/v1/lead-distribution/distribute", headers=manager_headers
        )

        assert response.status_code == 200
        assert response.json()["assigned_count"] == 0

    async def test_rep_cannot_distribute(self, async_client, auth_headers):
        response = await async_client.post(
            "/api/v1/lead-distribution/distribute", headers=auth_headers
        )
        assert response.status_code == 403


@pytest.mark.api
class TestLeadEndpoints:
    async def test_new_lead_auto_assigned_when_enabled(
        self, async_client, manager_headers, auth_headers, test_user
    ):
        await async_client.put(
            "/api/v1/lead-distribution/config",
            headers=manager_headers,
            json={"enabled": True, "method": "round_robin", "eligible_roles": ["user"]},
        )

        response = await async_client.post(
            "/api/v1/leads/",
            headers=auth_headers,
            json={"first_name": "Ada", "email": "ada@example.com", "company": "Analytical"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["assigned_to"] == str(test_user.id)
        assert data["assigned_at"] is not None
        assert data["status"] == "new"

    async def test_new_lead_stays_unassigned_when_nobody_eligible(
        self, async_client, manager_headers, auth_headers
    ):
        await async_client.put(
            "/api/v1/lead-distribution/config",
            headers=manager_headers,
            json={"enabled": True, "method": "round_robin", "eligible_roles": ["admin"]},
        )

        response = await async_client.post(
            "/api/v1/leads/", headers=auth_headers, json={"first_name": "Ada"}
        )

        assert response.status_code == 201
        assert response.json()["assigned_to"] is None

    async def test_list_unassigned_only(
        self, async_client, auth_headers, db_session, test_user
    ):
        first = await async_client.post("/api/v1/leads/", headers=auth_headers, json={"first_name": "A"})
        await async_client.post("/api/v1/leads/", headers=auth_headers, json={"first_name": "B"})

        result = await db_session.execute(select(Lead).where(Lead.id == UUID(first.json()["id"])))
        lead = result.scalar_one()
        lead.assigned_to = test_user.id
        await db_session.commit()

        response = await async_client.get(
            "/api/v1/leads/", headers=auth_headers, params={"unassigned_only": True}
        )

        assert response.status_code == 200
        assert [item["first_name"] for item in response.json()] == ["B"]

    async def test_get_lead_not_found(self, async_client, auth_headers):
        response = await async_client.get(
            "/api/v1/leads/00000000-0000-0000-0000-000000000000", headers=auth_headers
        )
        assert response.status_code == 404
