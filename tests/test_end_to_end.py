"""End-to-end scenarios across registration, approval and the gateway."""

import httpx
from fastapi.testclient import TestClient

from conftest import PROJECT_ID, make_token
from familysafe.config import AppConfig
from familysafe.gateway import create_gateway_app
from familysafe.models.enums import ApprovalStatus, UserRole

NOW = 1_700_000_000.0


def test_parent_and_child_onboarding(services):
    users = services["user_service"]
    workflow = services["approval_workflow_service"]
    families = services["family_service"]

    parent = users.create_user_profile("P", "p@example.com", UserRole.PENDING_PARENT)
    assert parent.approval_status == ApprovalStatus.PENDING

    parent = workflow.approve_parent_request("admin", "P")
    family = families.get_family_by_parent("P")
    assert parent.role == UserRole.PARENT
    assert parent.approval_status == ApprovalStatus.APPROVED
    assert parent.family_id == family.id

    child = users.create_user_profile(
        "C", "c@example.com", UserRole.PENDING_CHILD, parent_email="p@example.com"
    )
    assert child.approval_status == ApprovalStatus.PENDING
    assert child.role == UserRole.PENDING_CHILD
    assert [c.uid for c in users.get_pending_child_requests_for_parent("P")] == ["C"]

    child = workflow.approve_child_request("P", "C")
    parent = users.get_user_profile("P")
    family = families.get_family(family.id)
    assert child.role == UserRole.CHILD
    assert child.approval_status == ApprovalStatus.APPROVED
    assert child.family_id == family.id
    assert "C" in family.children_uids
    assert "C" in parent.children_uids
    assert [c.uid for c in families.get_family_children(family.id)] == ["C"]
    assert users.get_pending_child_requests_for_parent("P") == []


def test_invite_onboarding_and_proxy_access(services, logger):
    users = services["user_service"]
    workflow = services["approval_workflow_service"]

    users.create_user_profile("P", "p@example.com", UserRole.PENDING_PARENT)
    parent = workflow.approve_parent_request("admin", "P")
    code = services["invite_service"].generate_invite_code(parent.family_id)
    users.create_user_profile("C", "c@example.com", UserRole.PENDING_CHILD, invite_code=code)

    config = AppConfig(
        _env_file=None, PROJECT_ID=PROJECT_ID, LOG_FILE="", ENFORCE_PROFILE_POLICY=True
    )
    app = create_gateway_app(
        config,
        logger,
        profile_repo=services["profile_repo"],
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, headers={"content-type": "text/html"}, text="<p>ok</p>")
        ),
        clock=lambda: NOW,
    )
    headers = {"Authorization": f"Bearer {make_token('C', now=NOW)}"}

    with TestClient(app) as client:
        assert client.get("/", params={"url": "example.com"}, headers=headers).status_code == 403

        workflow.approve_child_request("P", "C")
        response = client.get("/", params={"url": "example.com"}, headers=headers)
        assert response.status_code == 200
        assert response.text == "<p>ok</p>"

        workflow.suspend_user("P", "C", "bedtime")
        response = client.get("/", params={"url": "example.com"}, headers=headers)
        assert response.status_code == 403
        assert response.text == "Access Denied: SUSPENDED"


def test_gateway_rejects_request_without_authorization(config, logger):
    app = create_gateway_app(
        config, logger, transport=httpx.MockTransport(lambda request: httpx.Response(200))
    )
    with TestClient(app) as client:
        response = client.get("/", params={"url": "example.com"})
    assert response.status_code == 401
    assert "Missing Authorization header." in response.text
