"""API test fixtures -- helpers for logging in through the HTTP surface."""
import pytest


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def login(client):
    """Post credentials to /auth/token and return the response."""

    async def _login(username: str = "staff", password: str = "password123"):
        return await client.post(
            "/api/v1/auth/token",
            json={"username": username, "password": password},
        )

    return _login


@pytest.fixture
def login_as(client, login):
    """Log in and make the client send that session's bearer token."""

    async def _login_as(username: str = "staff", password: str = "password123"):
        response = await login(username, password)
        assert response.status_code == 200
        token = response.json()["session_token"]
        client.headers.update(bearer(token))
        return token

    return _login_as


@pytest.fixture
async def logged_in_client(client, login_as):
    """Client holding the live session token for ``staff``."""
    await login_as()
    return client
