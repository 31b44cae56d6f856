"""Shared request helpers for the API tests."""

TEST_PASSWORD = "TestPassword123!"


async def login(client, email: str, password: str = TEST_PASSWORD) -> dict:
    response = await client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def bearer(access_token: str) -> dict:
    return {"Authorization": f"Bearer {access_token}"}
