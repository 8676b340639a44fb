"""API tests for the allocation endpoints — happy paths and error status mapping.

Runs against the SAVEPOINT-isolated SQLite session from conftest; the
``seeded`` fixture commits one project and full grants for the actor.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient
from uuid_extensions import uuid7

from resourceplan.api.dependencies import get_allocation_service
from resourceplan.errors import StorageError
from resourceplan.governance.audit import InMemoryAuditLogger
from resourceplan.governance.permissions import StaticPermissionChecker
from resourceplan.repositories.memory import InMemoryAllocationStore, InMemoryProjectLookup
from resourceplan.services.allocations import AllocationService


def _body(user_id, **overrides) -> dict:
    body = {
        "user_id": str(user_id),
        "role": "developer",
        "allocation_percent": "60",
        "start_date": "2025-01-01",
        "end_date": "2025-01-31",
    }
    body.update(overrides)
    return body


async def _create(client: AsyncClient, headers: dict, project_id, user_id, **overrides):
    return await client.post(
        f"/v1/projects/{project_id}/allocations",
        json=_body(user_id, **overrides),
        headers=headers,
    )


class TestCreate:
    @pytest.mark.anyio
    async def test_create_201(self, client: AsyncClient, seeded, headers, project_id, org_id) -> None:
        user = uuid7()
        resp = await _create(client, headers, project_id, user, notes={"ticket": "PRJ-1"})
        assert resp.status_code == 201
        data = resp.json()
        assert data["project_id"] == str(project_id)
        assert data["organization_id"] == str(org_id)
        assert data["user_id"] == str(user)
        assert Decimal(data["allocation_percent"]) == Decimal("60")
        assert data["notes"] == {"ticket": "PRJ-1"}
        assert data["deleted_at"] is None

    @pytest.mark.anyio
    async def test_conflict_409(self, client: AsyncClient, seeded, headers, project_id) -> None:
        user = uuid7()
        first = await _create(client, headers, project_id, user)
        assert first.status_code == 201

        resp = await _create(
            client, headers, project_id, user,
            allocation_percent="50", start_date="2025-01-15", end_date="2025-02-15",
        )
        assert resp.status_code == 409
        data = resp.json()
        assert data["error"] == "allocation_conflict"
        (conflict,) = data["conflicts"]
        assert Decimal(conflict["total_allocation"]) == Decimal("110")
        assert conflict["overlapping"] == [first.json()["allocation_id"]]

    @pytest.mark.anyio
    async def test_invalid_percent_400(self, client: AsyncClient, seeded, headers, project_id) -> None:
        resp = await _create(client, headers, project_id, uuid7(), allocation_percent="150")
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    @pytest.mark.anyio
    async def test_inverted_dates_400(self, client: AsyncClient, seeded, headers, project_id) -> None:
        resp = await _create(
            client, headers, project_id, uuid7(), start_date="2025-02-01", end_date="2025-01-01",
        )
        assert resp.status_code == 400

    @pytest.mark.anyio
    async def test_malformed_body_400(self, client: AsyncClient, seeded, headers, project_id) -> None:
        resp = await client.post(
            f"/v1/projects/{project_id}/allocations",
            json={"user_id": "not-a-uuid"},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.json()["errors"]

    @pytest.mark.anyio
    async def test_unknown_project_404(self, client: AsyncClient, seeded, headers) -> None:
        resp = await _create(client, headers, uuid7(), uuid7())
        assert resp.status_code == 404

    @pytest.mark.anyio
    async def test_actor_without_grants_403(self, client: AsyncClient, seeded, org_id, project_id) -> None:
        headers = {"X-Organization-Id": str(org_id), "X-Actor-Id": str(uuid7())}
        resp = await _create(client, headers, project_id, uuid7())
        assert resp.status_code == 403
        assert resp.json()["error"] == "permission_denied"

    @pytest.mark.anyio
    async def test_missing_headers_400(self, client: AsyncClient, seeded, project_id) -> None:
        resp = await _create(client, {}, project_id, uuid7())
        assert resp.status_code == 400


class TestReadUpdateDelete:
    @pytest.mark.anyio
    async def test_get(self, client: AsyncClient, seeded, headers, project_id) -> None:
        created = (await _create(client, headers, project_id, uuid7())).json()
        resp = await client.get(f"/v1/allocations/{created['allocation_id']}", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["allocation_id"] == created["allocation_id"]

    @pytest.mark.anyio
    async def test_get_missing_404(self, client: AsyncClient, seeded, headers) -> None:
        resp = await client.get(f"/v1/allocations/{uuid7()}", headers=headers)
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    @pytest.mark.anyio
    async def test_other_org_actor_403(self, client: AsyncClient, seeded, headers, project_id, actor_id) -> None:
        created = (await _create(client, headers, project_id, uuid7())).json()
        other = {"X-Organization-Id": str(uuid7()), "X-Actor-Id": str(actor_id)}
        resp = await client.get(f"/v1/allocations/{created['allocation_id']}", headers=other)
        # The actor holds no grants in the other org.
        assert resp.status_code == 403

    @pytest.mark.anyio
    async def test_patch(self, client: AsyncClient, seeded, headers, project_id) -> None:
        created = (await _create(client, headers, project_id, uuid7())).json()
        resp = await client.patch(
            f"/v1/allocations/{created['allocation_id']}",
            json={"allocation_percent": "80", "role": "architect"},
            headers=headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert Decimal(data["allocation_percent"]) == Decimal("80")
        assert data["role"] == "architect"
        assert data["start_date"] == "2025-01-01"

    @pytest.mark.anyio
    async def test_patch_identity_field_400(self, client: AsyncClient, seeded, headers, project_id) -> None:
        created = (await _create(client, headers, project_id, uuid7())).json()
        resp = await client.patch(
            f"/v1/allocations/{created['allocation_id']}",
            json={"user_id": str(uuid7())},
            headers=headers,
        )
        assert resp.status_code == 400

    @pytest.mark.anyio
    async def test_delete_then_get_404(self, client: AsyncClient, seeded, headers, project_id) -> None:
        created = (await _create(client, headers, project_id, uuid7())).json()
        url = f"/v1/allocations/{created['allocation_id']}"
        resp = await client.delete(url, headers=headers)
        assert resp.status_code == 204
        assert (await client.get(url, headers=headers)).status_code == 404
        assert (await client.delete(url, headers=headers)).status_code == 404


class TestListing:
    @pytest.mark.anyio
    async def test_pagination(self, client: AsyncClient, seeded, headers, project_id) -> None:
        for _ in range(5):
            assert (await _create(client, headers, project_id, uuid7())).status_code == 201

        sizes = []
        for page in (1, 2, 3):
            resp = await client.get(
                f"/v1/projects/{project_id}/allocations",
                params={"page": page, "page_size": 2},
                headers=headers,
            )
            assert resp.status_code == 200
            data = resp.json()
            assert data["total"] == 5
            sizes.append(len(data["items"]))
        assert sizes == [2, 2, 1]

    @pytest.mark.anyio
    async def test_filter_by_user(self, client: AsyncClient, seeded, headers, project_id) -> None:
        user = uuid7()
        await _create(client, headers, project_id, user)
        await _create(client, headers, project_id, uuid7())
        resp = await client.get(
            f"/v1/projects/{project_id}/allocations",
            params={"user_id": str(user)},
            headers=headers,
        )
        assert [item["user_id"] for item in resp.json()["items"]] == [str(user)]

    @pytest.mark.anyio
    async def test_page_size_defaults_to_settings(self, client: AsyncClient, seeded, headers, project_id) -> None:
        from resourceplan.config.settings import get_settings

        resp = await client.get(f"/v1/projects/{project_id}/allocations", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["page_size"] == get_settings().DEFAULT_PAGE_SIZE

    @pytest.mark.anyio
    async def test_page_size_over_limit_400(self, client: AsyncClient, seeded, headers, project_id) -> None:
        resp = await client.get(
            f"/v1/projects/{project_id}/allocations",
            params={"page_size": 500},
            headers=headers,
        )
        assert resp.status_code == 400


class TestCapacity:
    @pytest.mark.anyio
    async def test_project_capacity(self, client: AsyncClient, seeded, headers, project_id) -> None:
        await _create(client, headers, project_id, uuid7(), allocation_percent="50")
        resp = await client.get(
            f"/v1/projects/{project_id}/capacity",
            params={"weeks": 2, "start": "2025-01-06"},
            headers=headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["project_name"] == "Apollo"
        assert [Decimal(w["planned_hours"]) for w in data["weeks"]] == [Decimal("20"), Decimal("20")]
        assert Decimal(data["total_planned_hours"]) == Decimal("40")

    @pytest.mark.anyio
    async def test_user_capacity(self, client: AsyncClient, seeded, headers, project_id) -> None:
        user = uuid7()
        await _create(client, headers, project_id, user, allocation_percent="100")
        resp = await client.get(
            f"/v1/users/{user}/capacity",
            params={"weeks": 1, "start": "2025-01-06"},
            headers=headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert Decimal(data["peak_percent"]) == Decimal("100")
        assert data["over_allocated_weeks"] == []

    @pytest.mark.anyio
    async def test_weeks_over_limit_400(self, client: AsyncClient, seeded, headers, project_id) -> None:
        resp = await client.get(
            f"/v1/projects/{project_id}/capacity", params={"weeks": 60}, headers=headers,
        )
        assert resp.status_code == 400


class _BrokenStore(InMemoryAllocationStore):
    async def find_by_id(self, allocation_id, *, include_deleted=False):
        msg = "Allocation store failed during find by id: connection reset"
        raise StorageError(msg)


class TestStorageFailure:
    @pytest.mark.anyio
    async def test_storage_error_503(self, client: AsyncClient, headers, org_id, actor_id) -> None:
        from resourceplan.api.main import app

        def _broken_service() -> AllocationService:
            return AllocationService(
                organization_id=org_id,
                actor_id=actor_id,
                store=_BrokenStore(org_id),
                projects=InMemoryProjectLookup(),
                permissions=StaticPermissionChecker(allow_all=True),
                audit=InMemoryAuditLogger(),
            )

        app.dependency_overrides[get_allocation_service] = _broken_service
        resp = await client.get(f"/v1/allocations/{uuid7()}", headers=headers)
        assert resp.status_code == 503
        assert resp.json()["error"] == "storage_error"
