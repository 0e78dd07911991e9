"""
Tests for the request guard chain
Status mapping of each stage as seen over HTTP
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

from fastapi.testclient import TestClient
import pytest

from app.core.database import get_db
from app.core.errors import UpstreamUnavailable, UserDeleted, UserInactive, UserNotFound
from app.core.permission_resolver import permission_evaluator
from app.core.principal import Principal
from app.core.rbac import DEFAULT_SYSTEM_ROLE_PERMISSIONS, SystemRole, UserStatus
from app.core.security import token_issuer
from app.main import app
from app.repositories.role import role_repository
from app.services.principal_resolver import principal_resolver


@pytest.fixture
def client(mock_db):
    async def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def bearer():
    def _make(subject="auth|caller", app_metadata=None):
        token = token_issuer.create_access_token(subject, email="caller@example.com", app_metadata=app_metadata)
        return {"Authorization": f"Bearer {token.access_token}"}

    return _make


def make_principal(role: SystemRole, tenant_id=None) -> Principal:
    return Principal(
        user_id=uuid4(),
        email="caller@example.com",
        status=UserStatus.ACTIVE.value,
        tenant_id=tenant_id,
        role_id=uuid4(),
        role_name=role.value,
        auth_subject="auth|caller",
    )


@pytest.fixture
def as_role():
    """Resolve every request to a principal holding ``role`` with its default grants"""
    patches = []

    def _apply(role: SystemRole, tenant_id=None) -> Principal:
        principal = make_principal(role, tenant_id)
        resolve = patch.object(principal_resolver, "resolve", AsyncMock(return_value=principal))
        permissions = patch.object(
            permission_evaluator,
            "permissions_for_role",
            AsyncMock(return_value=frozenset(DEFAULT_SYSTEM_ROLE_PERMISSIONS[role])),
        )
        patches.extend([resolve, permissions])
        resolve.start()
        permissions.start()
        return principal

    yield _apply
    for active in reversed(patches):
        active.stop()


class TestCredentialStage:
    def test_missing_credential_is_401(self, client):
        response = client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json() == {"detail": "Not authenticated"}

    def test_garbage_credential_is_401(self, client):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.jwt"})

        assert response.status_code == 401

    def test_tampered_credential_is_401(self, client, bearer):
        headers = bearer()
        value = headers["Authorization"]
        tail = "QA" if value.endswith("AA") else "AA"
        headers["Authorization"] = value[:-2] + tail

        assert client.get("/api/v1/auth/me", headers=headers).status_code == 401


class TestPrincipalStage:
    @pytest.mark.parametrize("error", [UserNotFound("x"), UserDeleted("x"), UserInactive("x")])
    def test_resolution_failures_are_401(self, client, bearer, error):
        with patch.object(principal_resolver, "resolve", AsyncMock(side_effect=error)):
            response = client.get("/api/v1/auth/me", headers=bearer())

        assert response.status_code == 401
        assert response.json() == {"detail": "Not authenticated"}

    def test_masked_not_found_is_404(self, client, bearer):
        with patch.object(
            principal_resolver, "resolve", AsyncMock(side_effect=UserNotFound("x", mask_as_not_found=True))
        ):
            response = client.get("/api/v1/auth/me", headers=bearer())

        assert response.status_code == 404
        assert response.json() == {"detail": "Not found"}

    def test_store_outage_is_503_not_401(self, client, bearer):
        with patch.object(principal_resolver, "resolve", AsyncMock(side_effect=UpstreamUnavailable("store"))):
            response = client.get("/api/v1/auth/me", headers=bearer())

        assert response.status_code == 503


class TestContextStage:
    def test_forged_tenant_claim_is_403(self, client, bearer, as_role):
        as_role(SystemRole.CUSTOMER_ADMINISTRATOR, tenant_id=uuid4())

        response = client.get("/api/v1/auth/me", headers=bearer(app_metadata={"customer_id": str(uuid4())}))

        assert response.status_code == 403
        assert response.json() == {"detail": "Forbidden"}

    def test_me_reports_home_context(self, client, bearer, as_role):
        tenant = uuid4()
        principal = as_role(SystemRole.STANDARD_USER, tenant_id=tenant)

        response = client.get("/api/v1/auth/me", headers=bearer())

        assert response.status_code == 200
        body = response.json()
        assert body["principal"]["user_id"] == str(principal.user_id)
        assert body["context"]["effective_tenant_id"] == str(tenant)
        assert body["context"]["is_impersonating"] is False
        assert body["effective_user"] is None


class TestPermissionStage:
    def test_missing_permission_is_403(self, client, bearer, as_role):
        as_role(SystemRole.STANDARD_USER, tenant_id=uuid4())

        response = client.get("/api/v1/users/", headers=bearer())

        assert response.status_code == 403

    def test_admin_only_route_rejects_customer_success(self, client, bearer, as_role):
        as_role(SystemRole.CUSTOMER_SUCCESS)

        response = client.post(
            "/api/v1/customer-success-grants/",
            headers=bearer(),
            json={"user_id": str(uuid4()), "customer_id": str(uuid4())},
        )

        assert response.status_code == 403

    def test_renaming_system_admin_is_403_even_with_edit_permission(
        self, client, bearer, as_role, role_factory
    ):
        as_role(SystemRole.SYSTEM_ADMINISTRATOR)
        system_admin = role_factory(SystemRole.SYSTEM_ADMINISTRATOR.value)

        with patch.object(role_repository, "get", AsyncMock(return_value=system_admin)):
            response = client.patch(
                f"/api/v1/roles/{system_admin.id}", headers=bearer(), json={"name": "root_admin"}
            )

        assert response.status_code == 403
        assert system_admin.name == SystemRole.SYSTEM_ADMINISTRATOR.value
