"""Tests for the /api/v1/roles endpoints."""


class TestRolesEndpoint:

    async def test_list_roles_ordered(self, client):
        response = await client.get("/api/v1/roles")
        assert response.status_code == 200
        data = response.json()
        assert [r["role"] for r in data] == [
            "staff", "manager", "owner", "developer", "support",
        ]
        assert [r["access_level"] for r in data] == [1, 2, 3, 4, 5]

    async def test_role_contract_fields(self, client):
        data = (await client.get("/api/v1/roles")).json()
        assert set(data[0]) >= {
            "role", "label", "description", "access_level", "permitted_views",
        }

    async def test_role_views(self, client):
        response = await client.get("/api/v1/roles/developer/views")
        assert response.status_code == 200
        assert "debug" in response.json()

    async def test_unknown_role_404(self, client):
        response = await client.get("/api/v1/roles/cashier/views")
        assert response.status_code == 404

    async def test_my_views_requires_session(self, client):
        assert (await client.get("/api/v1/roles/me/views")).status_code == 401

    async def test_my_views(self, logged_in_client):
        response = await logged_in_client.get("/api/v1/roles/me/views")
        assert response.status_code == 200
        assert response.json() == ["pos", "inventory", "customers", "time_tracking"]

    async def test_my_modules(self, logged_in_client):
        response = await logged_in_client.get("/api/v1/roles/me/modules")
        assert response.status_code == 200
        assert response.json() == ["pos", "customers", "inventory", "reports"]

    async def test_my_modules_requires_session(self, client):
        assert (await client.get("/api/v1/roles/me/modules")).status_code == 401
