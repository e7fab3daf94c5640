import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from buildbid.common.enums import ProjectStatus, ProposalStatus
from buildbid.db.models.project import Project
from buildbid.db.models.proposal import Proposal


async def _submit(client, headers, payload, **overrides):
    return await client.post("/api/v1/proposals", headers=headers, json={**payload, **overrides})


# ---------- Creation ----------


@pytest.mark.asyncio
async def test_submit_proposal(client, contractor_headers, contractor_paid, open_project, proposal_payload):
    response = await _submit(client, contractor_headers, proposal_payload)
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "submitted"
    assert data["submitted_date"] is not None
    assert Decimal(data["subtotal_amount"]) <= Decimal(data["total_amount"])
    assert data["homeowner_id"] == str(open_project.creator_id)
    assert data["project"]["title"] == "Kitchen Remodel"
    assert data["contractor"]["full_name"] == "Test Contractor"


@pytest.mark.asyncio
async def test_created_proposal_reads_back_unchanged(
    client, contractor_headers, contractor_paid, open_project, proposal_payload
):
    payload = {
        **proposal_payload,
        "tax_included": True,
        "deposit_due_on": (date.today() + timedelta(days=10)).isoformat(),
        "notes": "Permit fees included",
        "attached_files": ["https://files.example.com/kitchen-quote.pdf"],
        "visibility": "shared_with_target_user",
    }
    created = (await _submit(client, contractor_headers, payload)).json()

    response = await client.get(f"/api/v1/proposals/{created['id']}", headers=contractor_headers)
    assert response.status_code == 200
    data = response.json()

    for field in ("subtotal_amount", "total_amount", "deposit_amount"):
        assert Decimal(data[field]) == Decimal(payload[field])
    for field in (
        "project_id",
        "title",
        "description_of_work",
        "tax_included",
        "deposit_due_on",
        "proposed_start_date",
        "proposed_end_date",
        "expiry_date",
        "notes",
        "attached_files",
        "visibility",
    ):
        assert data[field] == payload[field], field


@pytest.mark.asyncio
async def test_duplicate_proposal_conflicts(
    client, contractor_headers, contractor_paid, open_project, proposal_payload
):
    await _submit(client, contractor_headers, proposal_payload)

    response = await _submit(client, contractor_headers, proposal_payload, title="Second try")
    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "CONFLICT"
    assert "already have a proposal" in body["detail"]


@pytest.mark.asyncio
async def test_withdrawn_proposal_frees_slot(
    client, contractor_headers, contractor_paid, open_project, proposal_payload
):
    first = (await _submit(client, contractor_headers, proposal_payload)).json()
    response = await client.post(f"/api/v1/proposals/{first['id']}/withdraw", headers=contractor_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "withdrawn"
    assert response.json()["withdrawn_date"] is not None

    response = await _submit(client, contractor_headers, proposal_payload, title="Revised offer")
    assert response.status_code == 201


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [
        ProjectStatus.DRAFT,
        ProjectStatus.PROPOSAL_SELECTED,
        ProjectStatus.IN_PROGRESS,
        ProjectStatus.COMPLETED,
        ProjectStatus.CANCELLED,
    ],
)
async def test_proposal_rejected_unless_project_open(
    client, db_session, contractor_headers, contractor_paid, open_project, proposal_payload, status
):
    open_project.status = status.value
    await db_session.flush()

    response = await _submit(client, contractor_headers, proposal_payload)
    assert response.status_code == 400
    assert response.json()["code"] == "BAD_REQUEST"


@pytest.mark.asyncio
async def test_proposal_rejected_after_project_window(
    client, db_session, contractor_headers, contractor_paid, open_project, proposal_payload
):
    open_project.expiry_date = date.today() - timedelta(days=2)
    await db_session.flush()

    response = await _submit(client, contractor_headers, proposal_payload)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_cannot_propose_on_own_project(client, db_session, contractor_user, contractor_headers, contractor_paid):
    project = Project(
        creator_id=contractor_user.id,
        title="My own garage",
        statement_of_work="Build a garage",
        budget=Decimal("5000.00"),
        status=ProjectStatus.OPEN_FOR_PROPOSALS.value,
    )
    db_session.add(project)
    await db_session.flush()

    response = await client.post(
        "/api/v1/proposals",
        headers=contractor_headers,
        json={
            "project_id": str(project.id),
            "title": "Self dealing",
            "description_of_work": "Garage",
            "subtotal_amount": "4000.00",
            "total_amount": "4500.00",
        },
    )
    assert response.status_code == 403
    assert "own project" in response.json()["detail"]


@pytest.mark.asyncio
async def test_missing_project_not_found(client, contractor_headers, contractor_paid, proposal_payload):
    response = await _submit(client, contractor_headers, proposal_payload, project_id=str(uuid.uuid4()))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_submission_requires_fee(client, contractor_headers, open_project, proposal_payload):
    response = await _submit(client, contractor_headers, proposal_payload)
    assert response.status_code == 402
    assert response.json()["code"] == "PAYMENT_REQUIRED"


@pytest.mark.asyncio
async def test_draft_skips_fee_until_submitted(client, contractor_headers, open_project, proposal_payload):
    response = await _submit(client, contractor_headers, proposal_payload, submit=False)
    assert response.status_code == 201
    draft = response.json()
    assert draft["status"] == "draft"
    assert draft["submitted_date"] is None

    response = await client.post(f"/api/v1/proposals/{draft['id']}/submit", headers=contractor_headers)
    assert response.status_code == 402


@pytest.mark.asyncio
async def test_submit_draft(client, contractor_headers, contractor_paid, open_project, proposal_payload):
    draft = (await _submit(client, contractor_headers, proposal_payload, submit=False)).json()

    response = await client.post(f"/api/v1/proposals/{draft['id']}/submit", headers=contractor_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "submitted"

    response = await client.post(f"/api/v1/proposals/{draft['id']}/submit", headers=contractor_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_homeowner_cannot_create_proposal(client, auth_headers, proposal_payload):
    response = await _submit(client, auth_headers, proposal_payload)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_cannot_submit_as_someone_else(
    client, contractor_headers, contractor_paid, other_contractor_user, proposal_payload
):
    response = await _submit(
        client, contractor_headers, proposal_payload, contractor_id=str(other_contractor_user.id)
    )
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"subtotal_amount": "9600.00"},
        {"deposit_amount": "9600.00"},
        {"total_amount": "0"},
        {"subtotal_amount": "-1"},
        {"proposed_end_date": date.today().isoformat()},
        {"expiry_date": (date.today() - timedelta(days=1)).isoformat()},
        {"title": ""},
    ],
)
async def test_invalid_payload_rejected(
    client, contractor_headers, contractor_paid, open_project, proposal_payload, overrides
):
    response = await _submit(client, contractor_headers, proposal_payload, **overrides)
    assert response.status_code == 400
    assert response.json()["code"] == "BAD_REQUEST"


@pytest.mark.asyncio
async def test_total_above_budget_is_allowed(
    client, contractor_headers, contractor_paid, open_project, proposal_payload
):
    response = await _submit(
        client, contractor_headers, proposal_payload, subtotal_amount="15000.00", total_amount="16000.00"
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_store_rejects_second_live_proposal(db_session, contractor_user, open_project):
    def row():
        return Proposal(
            project_id=open_project.id,
            contractor_id=contractor_user.id,
            homeowner_id=open_project.creator_id,
            title="Race",
            description_of_work="Race",
            subtotal_amount=Decimal("1.00"),
            total_amount=Decimal("1.00"),
            status=ProposalStatus.SUBMITTED.value,
            created_by_id=contractor_user.id,
            last_modified_by_id=contractor_user.id,
        )

    db_session.add(row())
    await db_session.flush()
    db_session.add(row())
    with pytest.raises(IntegrityError):
        await db_session.flush()
    await db_session.rollback()


# ---------- Update ----------


@pytest.mark.asyncio
async def test_update_proposal(client, contractor_headers, contractor_paid, open_project, proposal_payload):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.patch(
        f"/api/v1/proposals/{created['id']}",
        headers=contractor_headers,
        json={"total_amount": "9800.00", "notes": "Includes haul-away"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total_amount"] == "9800.00"
    assert data["notes"] == "Includes haul-away"
    assert data["last_updated"] is not None


@pytest.mark.asyncio
async def test_update_revalidates_merged_amounts(
    client, contractor_headers, contractor_paid, open_project, proposal_payload
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.patch(
        f"/api/v1/proposals/{created['id']}",
        headers=contractor_headers,
        json={"total_amount": "5000.00"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_by_other_contractor_forbidden(
    client, contractor_headers, other_contractor_headers, contractor_paid, open_project, proposal_payload
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.patch(
        f"/api/v1/proposals/{created['id']}", headers=other_contractor_headers, json={"notes": "mine now"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_after_decision_is_invalid(
    client, auth_headers, contractor_headers, contractor_paid, open_project, proposal_payload
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()
    await client.post(
        f"/api/v1/proposals/{created['id']}/status", headers=auth_headers, json={"status": "rejected"}
    )

    response = await client.patch(
        f"/api/v1/proposals/{created['id']}", headers=contractor_headers, json={"notes": "please?"}
    )
    assert response.status_code == 400
    assert "editable" in response.json()["detail"]


@pytest.mark.asyncio
@pytest.mark.parametrize("action", ["accept", "withdraw"])
async def test_update_after_accept_or_withdraw_is_invalid(
    client, auth_headers, contractor_headers, contractor_paid, open_project, proposal_payload, action
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()
    if action == "accept":
        response = await client.post(
            f"/api/v1/proposals/{created['id']}/status", headers=auth_headers, json={"status": "accepted"}
        )
    else:
        response = await client.post(f"/api/v1/proposals/{created['id']}/withdraw", headers=contractor_headers)
    assert response.status_code == 200

    response = await client.patch(
        f"/api/v1/proposals/{created['id']}", headers=contractor_headers, json={"notes": "one more thing"}
    )
    assert response.status_code == 400
    assert "editable" in response.json()["detail"]


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["title", "total_amount", "tax_included"])
async def test_update_cannot_clear_required_field(
    client, contractor_headers, contractor_paid, open_project, proposal_payload, field
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.patch(
        f"/api/v1/proposals/{created['id']}", headers=contractor_headers, json={field: None}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "BAD_REQUEST"

    response = await client.get(f"/api/v1/proposals/{created['id']}", headers=contractor_headers)
    assert response.json()["title"] == proposal_payload["title"]


# ---------- Read ----------


@pytest.mark.asyncio
async def test_homeowner_read_marks_viewed(
    client, auth_headers, contractor_headers, contractor_paid, open_project, proposal_payload
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.get(f"/api/v1/proposals/{created['id']}", headers=contractor_headers)
    assert response.json()["status"] == "submitted"

    response = await client.get(f"/api/v1/proposals/{created['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "viewed"
    assert response.json()["viewed_date"] is not None


@pytest.mark.asyncio
async def test_unrelated_user_cannot_read(
    client, contractor_headers, other_contractor_headers, contractor_paid, open_project, proposal_payload
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.get(f"/api/v1/proposals/{created['id']}", headers=other_contractor_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied"


@pytest.mark.asyncio
async def test_admin_can_read(
    client, admin_headers, contractor_headers, contractor_paid, open_project, proposal_payload
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.get(f"/api/v1/proposals/{created['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "submitted"


@pytest.mark.asyncio
async def test_homeowner_cannot_read_draft(
    client, auth_headers, contractor_headers, open_project, proposal_payload
):
    draft = (await _submit(client, contractor_headers, proposal_payload, submit=False)).json()

    response = await client.get(f"/api/v1/proposals/{draft['id']}", headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_listings(
    client,
    auth_headers,
    contractor_headers,
    other_contractor_headers,
    contractor_paid,
    other_contractor_paid,
    open_project,
    proposal_payload,
):
    await _submit(client, contractor_headers, proposal_payload)
    await _submit(client, other_contractor_headers, proposal_payload, submit=False)

    response = await client.get(f"/api/v1/proposals/project/{open_project.id}", headers=auth_headers)
    assert response.json()["total"] == 1

    response = await client.get(
        f"/api/v1/proposals/project/{open_project.id}", headers=other_contractor_headers
    )
    assert [p["status"] for p in response.json()["items"]] == ["draft"]

    response = await client.get("/api/v1/proposals/mine", headers=contractor_headers)
    assert response.json()["total"] == 1

    response = await client.get("/api/v1/proposals/received", headers=auth_headers)
    assert response.json()["total"] == 1

    response = await client.get(
        "/api/v1/proposals/received", params={"status": "accepted"}, headers=auth_headers
    )
    assert response.json()["total"] == 0


# ---------- Status transitions ----------


@pytest.mark.asyncio
async def test_accept_advances_project(
    client, db_session, auth_headers, contractor_headers, contractor_paid, open_project, proposal_payload
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.post(
        f"/api/v1/proposals/{created['id']}/status", headers=auth_headers, json={"status": "accepted"}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "accepted"
    assert data["accepted_date"] is not None
    assert data["is_selected"] is True
    assert data["project"]["status"] == "proposal_selected"

    result = await db_session.execute(
        select(Project).where(Project.id == open_project.id).execution_options(populate_existing=True)
    )
    project = result.scalar_one()
    assert project.status == ProjectStatus.PROPOSAL_SELECTED.value
    assert project.decision_date is not None


@pytest.mark.asyncio
async def test_reject_records_reason(
    client, homeowner_user, auth_headers, contractor_headers, contractor_paid, open_project, proposal_payload
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.post(
        f"/api/v1/proposals/{created['id']}/status",
        headers=auth_headers,
        json={"status": "rejected", "rejection_reason": "too_expensive", "notes": "Over budget"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "rejected"
    assert data["rejected_date"] is not None
    assert data["rejected_by_id"] == str(homeowner_user.id)
    assert data["rejection_reason"] == "too_expensive"
    assert data["rejection_reason_notes"] == "Over budget"


@pytest.mark.asyncio
@pytest.mark.parametrize("first", ["rejected", "accepted"])
async def test_terminal_status_cannot_change(
    client, auth_headers, contractor_headers, contractor_paid, open_project, proposal_payload, first
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()
    url = f"/api/v1/proposals/{created['id']}/status"

    response = await client.post(url, headers=auth_headers, json={"status": first})
    assert response.status_code == 200
    for status in ("accepted", "rejected"):
        response = await client.post(url, headers=auth_headers, json={"status": status})
        assert response.status_code == 400


@pytest.mark.asyncio
async def test_status_update_only_accept_or_reject(
    client, auth_headers, contractor_headers, contractor_paid, open_project, proposal_payload
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.post(
        f"/api/v1/proposals/{created['id']}/status", headers=auth_headers, json={"status": "withdrawn"}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_contractor_cannot_accept_own_proposal(
    client, contractor_headers, contractor_paid, open_project, proposal_payload
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.post(
        f"/api/v1/proposals/{created['id']}/status", headers=contractor_headers, json={"status": "accepted"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_rejecting_after_selection_keeps_project_selected(
    client,
    auth_headers,
    contractor_headers,
    other_contractor_headers,
    contractor_paid,
    other_contractor_paid,
    open_project,
    proposal_payload,
):
    first = (await _submit(client, contractor_headers, proposal_payload)).json()
    second = (await _submit(client, other_contractor_headers, proposal_payload)).json()

    await client.post(f"/api/v1/proposals/{first['id']}/status", headers=auth_headers, json={"status": "accepted"})
    response = await client.post(
        f"/api/v1/proposals/{second['id']}/status", headers=auth_headers, json={"status": "rejected"}
    )
    assert response.status_code == 200
    assert response.json()["project"]["status"] == "proposal_selected"


@pytest.mark.asyncio
async def test_only_one_proposal_can_be_accepted(
    client,
    db_session,
    auth_headers,
    contractor_headers,
    other_contractor_headers,
    contractor_paid,
    other_contractor_paid,
    open_project,
    proposal_payload,
):
    first = (await _submit(client, contractor_headers, proposal_payload)).json()
    second = (await _submit(client, other_contractor_headers, proposal_payload)).json()

    response = await client.post(
        f"/api/v1/proposals/{first['id']}/status", headers=auth_headers, json={"status": "accepted"}
    )
    assert response.status_code == 200

    response = await client.post(
        f"/api/v1/proposals/{second['id']}/status", headers=auth_headers, json={"status": "accepted"}
    )
    assert response.status_code == 400
    assert "no longer accept" in response.json()["detail"]

    result = await db_session.execute(
        select(Proposal)
        .where(Proposal.project_id == open_project.id, Proposal.is_selected.is_(True))
        .execution_options(populate_existing=True)
    )
    assert [str(p.id) for p in result.scalars().all()] == [first["id"]]


# ---------- Expiry / delete ----------


@pytest.mark.asyncio
async def test_lazy_expiry_makes_proposal_immutable(
    client, db_session, contractor_headers, contractor_paid, open_project, proposal_payload
):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    result = await db_session.execute(select(Proposal).where(Proposal.id == uuid.UUID(created["id"])))
    proposal = result.scalar_one()
    proposal.expiry_date = date.today() - timedelta(days=1)
    await db_session.flush()

    response = await client.get(f"/api/v1/proposals/{created['id']}", headers=contractor_headers)
    assert response.json()["status"] == "expired"
    assert response.json()["expired_date"] is not None

    response = await client.patch(
        f"/api/v1/proposals/{created['id']}", headers=contractor_headers, json={"notes": "still valid?"}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_expire_stale_proposals_sweep(db_session, contractor_user, open_project):
    from buildbid.core.proposals.service import ProposalService

    stale = Proposal(
        project_id=open_project.id,
        contractor_id=contractor_user.id,
        homeowner_id=open_project.creator_id,
        title="Old offer",
        description_of_work="Old",
        subtotal_amount=Decimal("100.00"),
        total_amount=Decimal("100.00"),
        status=ProposalStatus.SUBMITTED.value,
        expiry_date=date.today() - timedelta(days=5),
        created_by_id=contractor_user.id,
        last_modified_by_id=contractor_user.id,
    )
    db_session.add(stale)
    await db_session.flush()

    expired = await ProposalService().expire_stale_proposals(db_session)
    assert expired == [str(stale.id)]
    assert stale.status == ProposalStatus.EXPIRED.value

    assert await ProposalService().expire_stale_proposals(db_session) == []


@pytest.mark.asyncio
async def test_delete_proposal(client, contractor_headers, contractor_paid, open_project, proposal_payload):
    created = (await _submit(client, contractor_headers, proposal_payload)).json()

    response = await client.delete(f"/api/v1/proposals/{created['id']}", headers=contractor_headers)
    assert response.status_code == 204

    response = await client.get(f"/api/v1/proposals/{created['id']}", headers=contractor_headers)
    assert response.status_code == 404

    response = await _submit(client, contractor_headers, proposal_payload)
    assert response.status_code == 201
