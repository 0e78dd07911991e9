"""
Tests for Role Service
Custom role administration, system role immutability and the permission join
"""

from contextlib import ExitStack
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from fastapi import HTTPException
import pytest

from app.core.errors import Forbidden
from app.core.permission_resolver import DBPermissionResolver, normalize_permissions
from app.core.rbac import WILDCARD_PERMISSION, SystemRole
from app.models import Permission, Role, RolePermission
from app.repositories.role import permission_repository, role_permission_repository, role_repository
from app.repositories.user import user_repository
from app.schemas.role import RoleCreateRequest, RoleUpdateRequest
from app.services.role import RoleService
from app.services.role_permission import RolePermissionService


def make_permission(name: str) -> Permission:
    return Permission(id=uuid4(), name=name, display_name=name)


CATALOG = {
    name: make_permission(name)
    for name in (
        "UserManagement:viewUsers",
        "UserManagement:editUser",
        "RoleManagement:viewRoles",
        "Documents:viewArticles",
    )
}


async def _apply_update(db, *, db_obj, obj_in):
    for field, value in obj_in.items():
        setattr(db_obj, field, value)
    return db_obj


@pytest.fixture
def cache():
    role_cache = AsyncMock()
    role_cache.invalidate = AsyncMock()
    return role_cache


@pytest.fixture
def joins():
    """In-memory role_permissions rows keyed by role id"""
    return {}


@pytest.fixture
def repos(joins):
    async def get_names(db, role_id):
        return [CATALOG_BY_ID[pid].name for pid in joins.get(role_id, [])]

    async def replace(db, role_id, permission_ids):
        joins[role_id] = list(dict.fromkeys(permission_ids))
        return len(joins[role_id])

    async def add(db, role_id, permission_id):
        joins.setdefault(role_id, []).append(permission_id)
        return RolePermission(role_id=role_id, permission_id=permission_id)

    async def remove(db, role_id, permission_id):
        if permission_id not in joins.get(role_id, []):
            return 0
        joins[role_id].remove(permission_id)
        return 1

    async def get_pair(db, role_id, permission_id):
        if permission_id in joins.get(role_id, []):
            return RolePermission(role_id=role_id, permission_id=permission_id)
        return None

    async def get_by_names(db, names):
        return [CATALOG[name] for name in names if name in CATALOG]

    with ExitStack() as stack:
        mocks = {
            "role_get": stack.enter_context(patch.object(role_repository, "get", AsyncMock(return_value=None))),
            "role_by_name": stack.enter_context(
                patch.object(role_repository, "get_by_name", AsyncMock(return_value=None))
            ),
            "role_create": stack.enter_context(patch.object(role_repository, "create", AsyncMock())),
            "role_update": stack.enter_context(
                patch.object(role_repository, "update", AsyncMock(side_effect=_apply_update))
            ),
            "role_delete": stack.enter_context(patch.object(role_repository, "delete", AsyncMock())),
            "perm_by_names": stack.enter_context(
                patch.object(permission_repository, "get_by_names", AsyncMock(side_effect=get_by_names))
            ),
            "perm_get": stack.enter_context(patch.object(permission_repository, "get", AsyncMock(return_value=None))),
            "join_names": stack.enter_context(
                patch.object(role_permission_repository, "get_permission_names", AsyncMock(side_effect=get_names))
            ),
            "join_replace": stack.enter_context(
                patch.object(role_permission_repository, "replace", AsyncMock(side_effect=replace))
            ),
            "join_add": stack.enter_context(patch.object(role_permission_repository, "add", AsyncMock(side_effect=add))),
            "join_remove": stack.enter_context(
                patch.object(role_permission_repository, "remove", AsyncMock(side_effect=remove))
            ),
            "perm_multi": stack.enter_context(
                patch.object(
                    permission_repository,
                    "get_multi",
                    AsyncMock(side_effect=lambda db, *, filters, limit: [CATALOG_BY_ID[pid] for pid in filters["id"]]),
                )
            ),
            "join_pair": stack.enter_context(
                patch.object(role_permission_repository, "get_pair", AsyncMock(side_effect=get_pair))
            ),
            "user_count": stack.enter_context(
                patch.object(user_repository, "count_with_role", AsyncMock(return_value=0))
            ),
        }
        yield mocks


CATALOG_BY_ID = {permission.id: permission for permission in CATALOG.values()}


@pytest.fixture
def role_service(cache):
    return RoleService(cache=cache)


@pytest.fixture
def role_permission_service(cache):
    return RolePermissionService(cache=cache)


class TestSystemRolesAreImmutable:
    @pytest.mark.asyncio
    async def test_renaming_system_admin_is_forbidden(self, role_service, repos, mock_db, role_factory):
        role = role_factory(SystemRole.SYSTEM_ADMINISTRATOR.value)
        repos["role_get"].return_value = role

        with pytest.raises(Forbidden) as exc_info:
            await role_service.update_role(mock_db, role.id, RoleUpdateRequest(name="super_admin"))

        assert exc_info.value.reason == "system_role_update"
        assert role.name == SystemRole.SYSTEM_ADMINISTRATOR.value
        repos["role_update"].assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role_name", [r.value for r in SystemRole])
    async def test_system_role_permissions_cannot_be_replaced(
        self, role_service, repos, mock_db, role_factory, role_name
    ):
        role = role_factory(role_name)
        repos["role_get"].return_value = role

        with pytest.raises(Forbidden):
            await role_service.update_permissions_by_name(mock_db, role.id, ["Documents:viewArticles"])

    @pytest.mark.asyncio
    async def test_system_role_cannot_be_deleted(self, role_service, repos, mock_db, role_factory):
        role = role_factory(SystemRole.STANDARD_USER.value)
        repos["role_get"].return_value = role

        with pytest.raises(Forbidden):
            await role_service.delete_role(mock_db, role.id)
        repos["role_delete"].assert_not_called()

    @pytest.mark.asyncio
    async def test_system_role_join_cannot_be_edited(
        self, role_permission_service, repos, mock_db, role_factory
    ):
        role = role_factory(SystemRole.CUSTOMER_SUCCESS.value)
        repos["role_get"].return_value = role

        with pytest.raises(Forbidden):
            await role_permission_service.add(mock_db, role.id, CATALOG["UserManagement:viewUsers"].id)
        with pytest.raises(Forbidden):
            await role_permission_service.sync_from_inline(mock_db, role.id)


class TestCreateRole:
    @pytest.mark.asyncio
    async def test_create_custom_role_writes_join_rows(self, role_service, repos, joins, mock_db, role_factory):
        created = role_factory("support_lead", is_system_role=False)
        repos["role_create"].return_value = created

        result = await role_service.create_role(
            mock_db,
            RoleCreateRequest(
                name="support_lead",
                display_name="Support Lead",
                permission_names=["UserManagement:viewUsers", "Documents:viewArticles"],
            ),
        )

        payload = repos["role_create"].call_args.kwargs["obj_in"]
        assert payload["is_system_role"] is False
        assert payload["permissions"] is None
        assert result.permission_source == "joined"
        assert result.permissions == ["Documents:viewArticles", "UserManagement:viewUsers"]
        assert len(joins[created.id]) == 2

    @pytest.mark.asyncio
    async def test_reserved_name_conflicts(self, role_service, repos, mock_db):
        with pytest.raises(HTTPException) as exc_info:
            await role_service.create_role(
                mock_db,
                RoleCreateRequest(name=SystemRole.SYSTEM_ADMINISTRATOR.value, display_name="Impostor"),
            )

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_duplicate_name_conflicts(self, role_service, repos, mock_db, role_factory):
        repos["role_by_name"].return_value = role_factory("support_lead", is_system_role=False)

        with pytest.raises(HTTPException) as exc_info:
            await role_service.create_role(mock_db, RoleCreateRequest(name="support_lead", display_name="Support"))

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_unknown_permission_names_are_rejected(self, role_service, repos, mock_db):
        with pytest.raises(HTTPException) as exc_info:
            await role_service.create_role(
                mock_db,
                RoleCreateRequest(name="auditor", display_name="Auditor", permission_names=["Nope:nothing"]),
            )

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["missing"] == ["Nope:nothing"]
        repos["role_create"].assert_not_called()


class TestUpdateRole:
    @pytest.mark.asyncio
    async def test_rename_to_taken_name_conflicts(self, role_service, repos, mock_db, role_factory):
        role = role_factory("auditor", is_system_role=False)
        repos["role_get"].return_value = role
        repos["role_by_name"].return_value = role_factory("support_lead", is_system_role=False)

        with pytest.raises(HTTPException) as exc_info:
            await role_service.update_role(mock_db, role.id, RoleUpdateRequest(name="support_lead"))

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_inline_role_is_updated_inline(self, role_service, repos, joins, cache, mock_db, role_factory):
        role = role_factory("legacy", is_system_role=False, permissions=["Documents:viewArticles"])
        repos["role_get"].return_value = role

        result = await role_service.update_permissions_by_name(
            mock_db, role.id, ["UserManagement:viewUsers", "UserManagement:editUser"]
        )

        assert role.permissions == ["UserManagement:viewUsers", "UserManagement:editUser"]
        assert role.id not in joins
        assert result.permission_source == "inline"
        cache.invalidate.assert_awaited_once_with(role.id)

    @pytest.mark.asyncio
    async def test_joined_role_is_updated_in_join(self, role_service, repos, joins, cache, mock_db, role_factory):
        role = role_factory("modern", is_system_role=False)
        joins[role.id] = [CATALOG["Documents:viewArticles"].id]
        repos["role_get"].return_value = role

        result = await role_service.update_permissions_by_name(mock_db, role.id, ["RoleManagement:viewRoles"])

        assert joins[role.id] == [CATALOG["RoleManagement:viewRoles"].id]
        assert role.permissions is None
        assert result.permissions == ["RoleManagement:viewRoles"]
        cache.invalidate.assert_awaited_once_with(role.id)


class TestDeleteRole:
    @pytest.mark.asyncio
    async def test_assigned_role_cannot_be_deleted(self, role_service, repos, mock_db, role_factory):
        role = role_factory("auditor", is_system_role=False)
        repos["role_get"].return_value = role
        repos["user_count"].return_value = 3

        with pytest.raises(HTTPException) as exc_info:
            await role_service.delete_role(mock_db, role.id)

        assert exc_info.value.status_code == 409
        repos["role_delete"].assert_not_called()

    @pytest.mark.asyncio
    async def test_unassigned_role_is_deleted_and_cache_dropped(
        self, role_service, repos, cache, mock_db, role_factory
    ):
        role = role_factory("auditor", is_system_role=False)
        repos["role_get"].return_value = role

        await role_service.delete_role(mock_db, role.id)

        repos["role_delete"].assert_awaited_once_with(mock_db, db_obj=role, soft_delete=False)
        cache.invalidate.assert_awaited_once_with(role.id)

    @pytest.mark.asyncio
    async def test_missing_role_is_404(self, role_service, repos, mock_db):
        with pytest.raises(HTTPException) as exc_info:
            await role_service.delete_role(mock_db, uuid4())

        assert exc_info.value.status_code == 404


class TestRolePermissionJoin:
    @pytest.mark.asyncio
    async def test_add_adopts_inline_list_first(
        self, role_permission_service, repos, joins, cache, mock_db, role_factory
    ):
        role = role_factory("legacy", is_system_role=False, permissions=["Documents:viewArticles"])
        repos["role_get"].return_value = role
        repos["perm_get"].return_value = CATALOG["UserManagement:viewUsers"]

        await role_permission_service.add(mock_db, role.id, CATALOG["UserManagement:viewUsers"].id)

        assert set(joins[role.id]) == {
            CATALOG["Documents:viewArticles"].id,
            CATALOG["UserManagement:viewUsers"].id,
        }
        assert role.permissions is None
        cache.invalidate.assert_awaited_with(role.id)

    @pytest.mark.asyncio
    async def test_add_duplicate_conflicts(self, role_permission_service, repos, joins, mock_db, role_factory):
        role = role_factory("modern", is_system_role=False)
        joins[role.id] = [CATALOG["UserManagement:viewUsers"].id]
        repos["role_get"].return_value = role
        repos["perm_get"].return_value = CATALOG["UserManagement:viewUsers"]

        with pytest.raises(HTTPException) as exc_info:
            await role_permission_service.add(mock_db, role.id, CATALOG["UserManagement:viewUsers"].id)

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_sync_reports_migrated_and_present(
        self, role_permission_service, repos, joins, mock_db, role_factory
    ):
        role = role_factory(
            "legacy", is_system_role=False, permissions=["Documents:viewArticles", "UserManagement:viewUsers"]
        )
        joins[role.id] = [CATALOG["UserManagement:viewUsers"].id]
        repos["role_get"].return_value = role

        result = await role_permission_service.sync_from_inline(mock_db, role.id)

        assert result.migrated == ["Documents:viewArticles"]
        assert result.already_present == ["UserManagement:viewUsers"]
        assert role.permissions is None


async def effective_permissions(db, role):
    return normalize_permissions(await DBPermissionResolver().load_source(db, role))


class TestStaleInlineList:
    @pytest.mark.asyncio
    async def test_removing_from_join_does_not_resurrect_inline_entries(
        self, role_permission_service, repos, joins, mock_db, role_factory
    ):
        role = role_factory("hybrid", is_system_role=False, permissions=["UserManagement:editUser"])
        joins[role.id] = [CATALOG["UserManagement:viewUsers"].id, CATALOG["Documents:viewArticles"].id]
        repos["role_get"].return_value = role

        await role_permission_service.remove(mock_db, role.id, CATALOG["Documents:viewArticles"].id)

        assert await effective_permissions(mock_db, role) == {"UserManagement:viewUsers"}
        assert role.permissions is None

    @pytest.mark.asyncio
    async def test_adding_to_join_drops_inline_entries_without_merging(
        self, role_permission_service, repos, joins, mock_db, role_factory
    ):
        role = role_factory("hybrid", is_system_role=False, permissions=["UserManagement:editUser"])
        joins[role.id] = [CATALOG["UserManagement:viewUsers"].id]
        repos["role_get"].return_value = role
        repos["perm_get"].return_value = CATALOG["RoleManagement:viewRoles"]

        await role_permission_service.add(mock_db, role.id, CATALOG["RoleManagement:viewRoles"].id)

        assert await effective_permissions(mock_db, role) == {
            "UserManagement:viewUsers",
            "RoleManagement:viewRoles",
        }
        assert role.permissions is None

    @pytest.mark.asyncio
    async def test_emptying_joined_role_by_name_leaves_nothing(
        self, role_service, repos, joins, mock_db, role_factory
    ):
        role = role_factory("hybrid", is_system_role=False, permissions=["UserManagement:editUser"])
        joins[role.id] = [CATALOG["UserManagement:viewUsers"].id]
        repos["role_get"].return_value = role

        result = await role_service.update_permissions_by_name(mock_db, role.id, [])

        assert await effective_permissions(mock_db, role) == frozenset()
        assert role.permissions is None
        assert result.permissions == []

    @pytest.mark.asyncio
    async def test_custom_role_without_permissions_is_written_to_join(
        self, role_service, repos, joins, mock_db, role_factory
    ):
        role = role_factory("fresh", is_system_role=False)
        repos["role_get"].return_value = role

        result = await role_service.update_permissions_by_name(mock_db, role.id, ["Documents:viewArticles"])

        assert joins[role.id] == [CATALOG["Documents:viewArticles"].id]
        assert role.permissions is None
        assert result.permission_source == "joined"
        repos["role_update"].assert_not_called()


class TestWildcardIsNotAssignable:
    @pytest.mark.asyncio
    async def test_wildcard_by_name_is_rejected(self, role_service, repos, joins, mock_db, role_factory):
        role = role_factory("fresh", is_system_role=False)
        repos["role_get"].return_value = role

        with pytest.raises(HTTPException) as exc_info:
            await role_service.update_permissions_by_name(mock_db, role.id, [WILDCARD_PERMISSION])

        assert exc_info.value.status_code == 400
        assert role.id not in joins

    @pytest.mark.asyncio
    async def test_existing_wildcard_row_cannot_be_set_by_id(
        self, role_permission_service, repos, joins, mock_db, role_factory
    ):
        role = role_factory("fresh", is_system_role=False)
        wildcard = make_permission(WILDCARD_PERMISSION)
        repos["role_get"].return_value = role
        repos["perm_multi"].side_effect = None
        repos["perm_multi"].return_value = [wildcard]

        with pytest.raises(HTTPException) as exc_info:
            await role_permission_service.set_permissions(mock_db, role.id, [wildcard.id])

        assert exc_info.value.status_code == 400
        assert role.id not in joins


class TestAgainstDatabase:
    """Role writes through a real async session, repositories unpatched"""

    @pytest.mark.asyncio
    async def test_update_role_reads_back_refreshed_timestamps(self, db_session, cache):
        role = await role_repository.create(
            db_session,
            obj_in={"name": "auditor", "display_name": "Auditor", "is_system_role": False, "permissions": None},
        )
        await db_session.commit()

        result = await RoleService(cache=cache).update_role(
            db_session, role.id, RoleUpdateRequest(display_name="Senior Auditor")
        )

        assert result.display_name == "Senior Auditor"
        assert result.updated_at is not None
        assert result.created_at is not None
        cache.invalidate.assert_awaited_once_with(role.id)

    @pytest.mark.asyncio
    async def test_inline_permission_update_reads_back(self, db_session, cache):
        viewer = await permission_repository.create(
            db_session, obj_in={"name": "Documents:viewArticles", "display_name": "Documents: viewArticles"}
        )
        role = await role_repository.create(
            db_session,
            obj_in={"name": "legacy", "display_name": "Legacy", "is_system_role": False, "permissions": []},
        )
        await db_session.commit()

        result = await RoleService(cache=cache).update_permissions_by_name(db_session, role.id, [viewer.name])

        assert result.permission_source == "inline"
        assert result.permissions == ["Documents:viewArticles"]
        assert result.updated_at is not None
        stored = (await db_session.get(Role, role.id)).permissions
        assert stored == ["Documents:viewArticles"]
