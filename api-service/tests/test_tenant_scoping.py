"""
Tests for tenant-scoped queries and customer success grants
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

from fastapi import HTTPException
import pytest

from app.core.principal import AuthorizedRequest, RequestContext
from app.core.rbac import SystemRole
from app.schemas.customer_success_grant import GrantCreateRequest
from app.services.customer_success_grants import CustomerSuccessGrantService
from app.services.user import UserService, scoped_tenant_id


def authorized(principal, *, tenant_id=None, effective_user=None, impersonated_user_id=None):
    context = RequestContext(
        principal=principal,
        effective_tenant_id=tenant_id if tenant_id is not None else principal.tenant_id,
        impersonated_user_id=impersonated_user_id,
        effective_user=effective_user or principal,
    )
    return AuthorizedRequest(principal=principal, context=context)


class TestScopedTenant:
    def test_non_admin_always_reads_effective_tenant(self, principal_factory):
        home = uuid4()
        request = authorized(principal_factory(SystemRole.CUSTOMER_ADMINISTRATOR.value, tenant_id=home))

        assert scoped_tenant_id(request, uuid4(), allow_cross_tenant=True) == home

    def test_admin_may_name_tenant_on_cross_tenant_endpoint(self, principal_factory):
        other = uuid4()
        request = authorized(principal_factory(SystemRole.SYSTEM_ADMINISTRATOR.value))

        assert scoped_tenant_id(request, other, allow_cross_tenant=True) == other
        assert scoped_tenant_id(request, other) is None

    def test_impersonating_admin_is_scoped_like_the_target(self, principal_factory):
        target_tenant = uuid4()
        admin = principal_factory(SystemRole.SYSTEM_ADMINISTRATOR.value)
        target = principal_factory(SystemRole.STANDARD_USER.value, tenant_id=target_tenant)
        request = authorized(
            admin, tenant_id=target_tenant, effective_user=target, impersonated_user_id=target.user_id
        )

        assert scoped_tenant_id(request, uuid4(), allow_cross_tenant=True) == target_tenant


class TestListUsers:
    @pytest.mark.asyncio
    async def test_tenantless_non_admin_sees_nothing(self, mock_db, principal_factory):
        request = authorized(principal_factory(SystemRole.CUSTOMER_SUCCESS.value))

        with patch("app.services.user.user_repository") as repo:
            repo.list_for_tenant = AsyncMock()
            items, total = await UserService().list_users(mock_db, request, skip=0, limit=20)

        assert (items, total) == ([], 0)
        repo.list_for_tenant.assert_not_called()

    @pytest.mark.asyncio
    async def test_listing_is_filtered_to_effective_tenant(self, mock_db, principal_factory, user_factory):
        home = uuid4()
        request = authorized(principal_factory(SystemRole.CUSTOMER_ADMINISTRATOR.value, tenant_id=home))
        member = user_factory(customer_id=home)

        with patch("app.services.user.user_repository") as repo:
            repo.list_for_tenant = AsyncMock(return_value=([member], 1))
            items, total = await UserService().list_users(
                mock_db, request, skip=0, limit=20, customer_id=uuid4()
            )

        repo.list_for_tenant.assert_awaited_once_with(mock_db, customer_id=home, skip=0, limit=20, status=None)
        assert total == 1
        assert items[0].email == member.email
        assert items[0].role_name == SystemRole.STANDARD_USER.value


@pytest.fixture
def grant_repos():
    with patch("app.services.customer_success_grants.user_repository") as users, \
            patch("app.services.customer_success_grants.customer_repository") as customers, \
            patch("app.services.customer_success_grants.customer_success_grant_repository") as grants:
        users.get = AsyncMock(return_value=None)
        customers.exists = AsyncMock(return_value=True)
        grants.get_pair = AsyncMock(return_value=None)
        grants.create = AsyncMock()
        yield {"users": users, "customers": customers, "grants": grants}


class TestCustomerSuccessGrants:
    @pytest.mark.asyncio
    async def test_grant_requires_customer_success_role(self, grant_repos, mock_db, user_factory):
        grant_repos["users"].get.return_value = user_factory(role_name=SystemRole.STANDARD_USER.value)

        with pytest.raises(HTTPException) as exc_info:
            await CustomerSuccessGrantService().create_grant(
                mock_db, GrantCreateRequest(user_id=uuid4(), customer_id=uuid4())
            )

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_grant_for_unknown_customer_is_404(self, grant_repos, mock_db, user_factory):
        grant_repos["users"].get.return_value = user_factory(role_name=SystemRole.CUSTOMER_SUCCESS.value)
        grant_repos["customers"].exists.return_value = False

        with pytest.raises(HTTPException) as exc_info:
            await CustomerSuccessGrantService().create_grant(
                mock_db, GrantCreateRequest(user_id=uuid4(), customer_id=uuid4())
            )

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_duplicate_grant_conflicts(self, grant_repos, mock_db, user_factory):
        grant_repos["users"].get.return_value = user_factory(role_name=SystemRole.CUSTOMER_SUCCESS.value)
        grant_repos["grants"].get_pair.return_value = object()

        with pytest.raises(HTTPException) as exc_info:
            await CustomerSuccessGrantService().create_grant(
                mock_db, GrantCreateRequest(user_id=uuid4(), customer_id=uuid4())
            )

        assert exc_info.value.status_code == 409
        grant_repos["grants"].create.assert_not_called()
