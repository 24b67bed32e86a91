from __future__ import annotations

import pytest

from payreq.core.exceptions import Forbidden
from payreq.core.permissions import ALL_PERMISSIONS, LegacyRole, P
from payreq.models import Role
from payreq.services.permission_service import (
    Decision, LegacyGrant, Principal, PermissionService, RoleGrant, resolve_permissions,
)


def _principal(legacy_role, role_ids=()):
    return Principal(user_id=1, company_id=1, legacy_role=legacy_role, role_ids=frozenset(role_ids))


def test_grant_is_legacy_when_no_roles_assigned():
    assert _principal(LegacyRole.MANAGER).grant == LegacyGrant(LegacyRole.MANAGER)
    assert _principal(LegacyRole.USER, [3, 4]).grant == RoleGrant(frozenset({3, 4}))


def test_legacy_admin_without_roles_is_allowed_everything(db):
    service = PermissionService(db)
    for permission in (P.ROLE_DELETE, P.SETTING_MANAGE, P.PAYMENT_REQUEST_APPROVE, "unknown:thing"):
        assert service.authorize(_principal(LegacyRole.ADMIN), [permission]) == Decision.ALLOW


@pytest.mark.parametrize("legacy_role", [LegacyRole.MANAGER, LegacyRole.ACCOUNTANT, LegacyRole.USER])
def test_legacy_non_admin_without_roles_is_denied(db, legacy_role):
    service = PermissionService(db)
    for permission in (P.USER_READ, P.PAYMENT_REQUEST_READ, P.EXPENSE_REQUEST_CREATE):
        assert service.authorize(_principal(legacy_role), [permission]) == Decision.DENY


def test_role_based_principal_gets_union_of_role_permissions(db):
    service = PermissionService(db)
    accountant = db.query(Role).filter(Role.role_name == "ACCOUNTANT").one()
    employee = db.query(Role).filter(Role.role_name == "EMPLOYEE").one()
    principal = _principal(LegacyRole.USER, [accountant.id, employee.id])

    assert service.authorize(principal, [P.PAYMENT_REQUEST_UPDATE]) == Decision.ALLOW
    assert service.authorize(principal, [P.EXPENSE_REQUEST_CREATE]) == Decision.ALLOW
    assert service.authorize(principal, [P.ROLE_DELETE]) == Decision.DENY


def test_required_list_is_any_of(db):
    service = PermissionService(db)
    employee = db.query(Role).filter(Role.role_name == "EMPLOYEE").one()
    principal = _principal(LegacyRole.USER, [employee.id])

    assert service.authorize(principal, [P.ROLE_DELETE, P.EXPENSE_REQUEST_CREATE]) == Decision.ALLOW
    assert service.authorize(principal, [P.ROLE_DELETE, P.USER_MANAGE]) == Decision.DENY


def test_role_based_admin_legacy_is_not_a_shortcut(db):
    employee = db.query(Role).filter(Role.role_name == "EMPLOYEE").one()
    principal = _principal(LegacyRole.ADMIN, [employee.id])

    assert PermissionService(db).authorize(principal, [P.ROLE_DELETE]) == Decision.DENY


def test_missing_role_ids_contribute_nothing(db):
    employee = db.query(Role).filter(Role.role_name == "EMPLOYEE").one()
    service = PermissionService(db)

    assert service.authorize(_principal(LegacyRole.USER, [9999]), [P.USER_READ]) == Decision.DENY
    principal = _principal(LegacyRole.USER, [employee.id, 9999])
    assert service.authorize(principal, [P.USER_READ]) == Decision.ALLOW
    assert [role.id for role in service.load_principal_roles(principal)] == [employee.id]


def test_resolve_permissions_is_pure_union(db):
    roles = db.query(Role).filter(Role.role_name.in_(["ACCOUNTANT", "EMPLOYEE"])).all()
    permissions = resolve_permissions(roles)

    assert P.PAYMENT_REQUEST_UPDATE in permissions
    assert P.EXPENSE_REQUEST_CREATE in permissions
    assert resolve_permissions([]) == set()


def test_require_raises_forbidden_on_deny(db):
    with pytest.raises(Forbidden) as exc:
        PermissionService(db).require(_principal(LegacyRole.USER), P.ROLE_CREATE)
    assert exc.value.status_code == 403
    assert "role:create" in exc.value.message


def test_require_accepts_legacy_role_alternative(db):
    PermissionService(db).require(
        _principal(LegacyRole.MANAGER), P.EXPENSE_REQUEST_APPROVE,
        legacy_roles=(LegacyRole.ADMIN, LegacyRole.MANAGER)
    )


def test_principal_from_user_reads_assigned_roles(db, accountant):
    principal = Principal.from_user(accountant)

    assert principal.legacy_role == LegacyRole.ACCOUNTANT
    assert principal.company_id == accountant.company_id
    assert len(principal.role_ids) == 1
    assert isinstance(principal.grant, RoleGrant)


def test_principal_permissions_for_legacy_admin_cover_catalogue(db):
    permissions = PermissionService(db).get_principal_permissions(_principal(LegacyRole.ADMIN))
    assert permissions == set(ALL_PERMISSIONS)
