import pytest


async def _open_conversation(client, contractor_headers, open_project):
    response = await client.post(
        "/api/v1/messages/conversations",
        headers=contractor_headers,
        json={"project_id": str(open_project.id)},
    )
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_create_or_get_conversation_is_idempotent(
    client, auth_headers, contractor_headers, contractor_user, open_project
):
    first = await _open_conversation(client, contractor_headers, open_project)
    assert first["contractor"]["id"] == str(contractor_user.id)
    assert first["project_title"] == "Kitchen Remodel"

    second = await _open_conversation(client, contractor_headers, open_project)
    assert second["id"] == first["id"]

    response = await client.post(
        "/api/v1/messages/conversations",
        headers=auth_headers,
        json={"project_id": str(open_project.id), "contractor_id": str(contractor_user.id)},
    )
    assert response.json()["id"] == first["id"]


@pytest.mark.asyncio
async def test_homeowner_must_name_contractor(client, auth_headers, open_project):
    response = await client.post(
        "/api/v1/messages/conversations",
        headers=auth_headers,
        json={"project_id": str(open_project.id)},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_send_and_read_messages(client, auth_headers, contractor_headers, open_project):
    conversation = await _open_conversation(client, contractor_headers, open_project)
    url = f"/api/v1/messages/conversations/{conversation['id']}"

    response = await client.post(
        f"{url}/messages", headers=contractor_headers, json={"content": "When can I visit the site?"}
    )
    assert response.status_code == 201
    assert response.json()["read_at"] is None

    response = await client.get("/api/v1/messages/unread-count", headers=auth_headers)
    assert response.json()["unread"] == 1
    response = await client.get("/api/v1/messages/unread-count", headers=contractor_headers)
    assert response.json()["unread"] == 0

    response = await client.get(url, headers=auth_headers)
    assert response.status_code == 200
    assert [m["content"] for m in response.json()["items"]] == ["When can I visit the site?"]

    response = await client.post(f"{url}/read", headers=auth_headers)
    assert response.json()["updated"] == 1

    response = await client.get("/api/v1/messages/unread-count", headers=auth_headers)
    assert response.json()["unread"] == 0

    response = await client.get("/api/v1/messages/conversations", headers=auth_headers)
    assert response.json()["total"] == 1
    assert response.json()["items"][0]["last_message_at"] is not None


@pytest.mark.asyncio
async def test_outsider_cannot_read_conversation(
    client, contractor_headers, other_contractor_headers, open_project
):
    conversation = await _open_conversation(client, contractor_headers, open_project)

    response = await client.get(
        f"/api/v1/messages/conversations/{conversation['id']}", headers=other_contractor_headers
    )
    assert response.status_code == 403

    response = await client.post(
        f"/api/v1/messages/conversations/{conversation['id']}/messages",
        headers=other_contractor_headers,
        json={"content": "hi"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_delete_own_message_only(client, auth_headers, contractor_headers, open_project):
    conversation = await _open_conversation(client, contractor_headers, open_project)
    sent = await client.post(
        f"/api/v1/messages/conversations/{conversation['id']}/messages",
        headers=contractor_headers,
        json={"content": "Typo"},
    )
    message_id = sent.json()["id"]

    response = await client.delete(f"/api/v1/messages/{message_id}", headers=auth_headers)
    assert response.status_code == 403

    response = await client.delete(f"/api/v1/messages/{message_id}", headers=contractor_headers)
    assert response.status_code == 204

    response = await client.get(
        f"/api/v1/messages/conversations/{conversation['id']}", headers=contractor_headers
    )
    assert response.json()["total"] == 0
