import pytest


@pytest.mark.asyncio
async def test_list_users_admin_only(client, auth_headers, admin_headers, contractor_user):
    response = await client.get("/api/v1/admin/users", headers=auth_headers)
    assert response.status_code == 403

    response = await client.get("/api/v1/admin/users", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["total"] >= 2

    response = await client.get(
        "/api/v1/admin/users", params={"role": "contractor"}, headers=admin_headers
    )
    assert [u["email"] for u in response.json()["items"]] == [contractor_user.email]


@pytest.mark.asyncio
async def test_verify_contractor(client, admin_headers, contractor_user):
    response = await client.patch(
        f"/api/v1/admin/users/{contractor_user.id}",
        headers=admin_headers,
        json={"contractor_verified": True},
    )
    assert response.status_code == 200
    assert response.json()["contractor_verified"] is True


@pytest.mark.asyncio
async def test_deactivated_user_is_forbidden(client, admin_headers, contractor_user, contractor_headers):
    await client.patch(
        f"/api/v1/admin/users/{contractor_user.id}",
        headers=admin_headers,
        json={"is_active": False},
    )

    response = await client.get("/api/v1/auth/me", headers=contractor_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_cannot_demote_self(client, admin_headers, admin_user):
    response = await client.patch(
        f"/api/v1/admin/users/{admin_user.id}", headers=admin_headers, json={"role": "homeowner"}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_platform_stats(client, admin_headers, contractor_paid, open_project):
    response = await client.get("/api/v1/admin/stats", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["open_projects"] == 1
    assert data["fees_collected_cents"] == 1500
    assert data["users_by_role"]["admin"] == 1


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["payments"] == "ok"
