"""
Permission Catalog

Permissions are flat ``<resource>:<action>`` strings. This module is the single
source for the catalogued strings, the default sets attached to the legacy
roles and the system/business roles seeded at startup.
"""
import enum
from typing import Dict, List


class PermissionAction(str, enum.Enum):
    CREATE = "create"
    READ = "read"
    READ_ALL = "read_all"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"
    MANAGE = "manage"


class PermissionResource(str, enum.Enum):
    USER = "user"
    ROLE = "role"
    COMPANY = "company"
    DEPARTMENT = "department"
    EXPENSE_REQUEST = "expense_request"
    PAYMENT_REQUEST = "payment_request"
    BUDGET = "budget"
    REPORT = "report"
    SETTING = "setting"


class LegacyRole(str, enum.Enum):
    """Four-value role kept on every user for backward compatibility"""
    ADMIN = "admin"
    MANAGER = "manager"
    ACCOUNTANT = "accountant"
    USER = "user"


def generate_permission(resource: PermissionResource, action: PermissionAction) -> str:
    return f"{resource.value}:{action.value}"


_R = PermissionResource
_A = PermissionAction

_CRUD_MANAGE = [_A.CREATE, _A.READ, _A.READ_ALL, _A.UPDATE, _A.DELETE, _A.MANAGE]

# Actions catalogued per resource; order drives the UI listing.
RESOURCE_ACTIONS: Dict[PermissionResource, List[PermissionAction]] = {
    _R.USER: _CRUD_MANAGE,
    _R.ROLE: _CRUD_MANAGE,
    _R.COMPANY: _CRUD_MANAGE,
    _R.DEPARTMENT: _CRUD_MANAGE,
    _R.EXPENSE_REQUEST: [_A.CREATE, _A.READ, _A.READ_ALL, _A.UPDATE, _A.DELETE, _A.APPROVE, _A.REJECT],
    _R.PAYMENT_REQUEST: [_A.CREATE, _A.READ, _A.READ_ALL, _A.UPDATE, _A.DELETE, _A.APPROVE, _A.REJECT],
    _R.BUDGET: [_A.CREATE, _A.READ, _A.READ_ALL, _A.UPDATE, _A.DELETE, _A.APPROVE],
    _R.REPORT: [_A.CREATE, _A.READ, _A.READ_ALL],
    _R.SETTING: [_A.READ, _A.UPDATE, _A.MANAGE],
}


class SystemPermissions:
    """Named constants for every catalogued permission string"""

    USER_CREATE = "user:create"
    USER_READ = "user:read"
    USER_READ_ALL = "user:read_all"
    USER_UPDATE = "user:update"
    USER_DELETE = "user:delete"
    USER_MANAGE = "user:manage"

    ROLE_CREATE = "role:create"
    ROLE_READ = "role:read"
    ROLE_READ_ALL = "role:read_all"
    ROLE_UPDATE = "role:update"
    ROLE_DELETE = "role:delete"
    ROLE_MANAGE = "role:manage"

    COMPANY_CREATE = "company:create"
    COMPANY_READ = "company:read"
    COMPANY_READ_ALL = "company:read_all"
    COMPANY_UPDATE = "company:update"
    COMPANY_DELETE = "company:delete"
    COMPANY_MANAGE = "company:manage"

    DEPARTMENT_CREATE = "department:create"
    DEPARTMENT_READ = "department:read"
    DEPARTMENT_READ_ALL = "department:read_all"
    DEPARTMENT_UPDATE = "department:update"
    DEPARTMENT_DELETE = "department:delete"
    DEPARTMENT_MANAGE = "department:manage"

    EXPENSE_REQUEST_CREATE = "expense_request:create"
    EXPENSE_REQUEST_READ = "expense_request:read"
    EXPENSE_REQUEST_READ_ALL = "expense_request:read_all"
    EXPENSE_REQUEST_UPDATE = "expense_request:update"
    EXPENSE_REQUEST_DELETE = "expense_request:delete"
    EXPENSE_REQUEST_APPROVE = "expense_request:approve"
    EXPENSE_REQUEST_REJECT = "expense_request:reject"

    PAYMENT_REQUEST_CREATE = "payment_request:create"
    PAYMENT_REQUEST_READ = "payment_request:read"
    PAYMENT_REQUEST_READ_ALL = "payment_request:read_all"
    PAYMENT_REQUEST_UPDATE = "payment_request:update"
    PAYMENT_REQUEST_DELETE = "payment_request:delete"
    PAYMENT_REQUEST_APPROVE = "payment_request:approve"
    PAYMENT_REQUEST_REJECT = "payment_request:reject"

    BUDGET_CREATE = "budget:create"
    BUDGET_READ = "budget:read"
    BUDGET_READ_ALL = "budget:read_all"
    BUDGET_UPDATE = "budget:update"
    BUDGET_DELETE = "budget:delete"
    BUDGET_APPROVE = "budget:approve"

    REPORT_CREATE = "report:create"
    REPORT_READ = "report:read"
    REPORT_READ_ALL = "report:read_all"

    SETTING_READ = "setting:read"
    SETTING_UPDATE = "setting:update"
    SETTING_MANAGE = "setting:manage"


ALL_PERMISSIONS: List[str] = [
    generate_permission(resource, action)
    for resource, actions in RESOURCE_ACTIONS.items()
    for action in actions
]

P = SystemPermissions

DEFAULT_ROLE_PERMISSIONS: Dict[LegacyRole, List[str]] = {
    LegacyRole.ADMIN: list(ALL_PERMISSIONS),
    LegacyRole.MANAGER: [
        P.USER_READ, P.USER_READ_ALL,
        P.COMPANY_READ,
        P.DEPARTMENT_CREATE, P.DEPARTMENT_READ, P.DEPARTMENT_READ_ALL, P.DEPARTMENT_UPDATE,
        P.EXPENSE_REQUEST_CREATE, P.EXPENSE_REQUEST_READ, P.EXPENSE_REQUEST_READ_ALL,
        P.EXPENSE_REQUEST_UPDATE, P.EXPENSE_REQUEST_APPROVE, P.EXPENSE_REQUEST_REJECT,
        P.PAYMENT_REQUEST_CREATE, P.PAYMENT_REQUEST_READ, P.PAYMENT_REQUEST_READ_ALL,
        P.PAYMENT_REQUEST_UPDATE, P.PAYMENT_REQUEST_APPROVE, P.PAYMENT_REQUEST_REJECT,
        P.BUDGET_CREATE, P.BUDGET_READ, P.BUDGET_READ_ALL, P.BUDGET_UPDATE, P.BUDGET_APPROVE,
        P.REPORT_CREATE, P.REPORT_READ, P.REPORT_READ_ALL,
    ],
    LegacyRole.ACCOUNTANT: [
        P.USER_READ,
        P.COMPANY_READ,
        P.EXPENSE_REQUEST_READ, P.EXPENSE_REQUEST_READ_ALL,
        P.PAYMENT_REQUEST_CREATE, P.PAYMENT_REQUEST_READ, P.PAYMENT_REQUEST_READ_ALL,
        P.PAYMENT_REQUEST_UPDATE,
        P.BUDGET_READ, P.BUDGET_READ_ALL,
        P.REPORT_CREATE, P.REPORT_READ, P.REPORT_READ_ALL,
    ],
    LegacyRole.USER: [
        P.USER_READ,
        P.EXPENSE_REQUEST_CREATE, P.EXPENSE_REQUEST_READ,
        P.PAYMENT_REQUEST_CREATE, P.PAYMENT_REQUEST_READ,
        P.BUDGET_READ,
        P.REPORT_READ,
    ],
}

# Legacy roles that receive finance notifications
FINANCE_ROLES = (LegacyRole.ADMIN, LegacyRole.MANAGER, LegacyRole.ACCOUNTANT)

SYSTEM_ROLES: List[dict] = [
    {
        "role_name": "ADMINISTRATOR",
        "description": "Full system access with all permissions",
        "permissions": DEFAULT_ROLE_PERMISSIONS[LegacyRole.ADMIN],
    },
    {
        "role_name": "MANAGER",
        "description": "Department management and approval capabilities",
        "permissions": DEFAULT_ROLE_PERMISSIONS[LegacyRole.MANAGER],
    },
    {
        "role_name": "ACCOUNTANT",
        "description": "Financial operations and reporting",
        "permissions": DEFAULT_ROLE_PERMISSIONS[LegacyRole.ACCOUNTANT],
    },
    {
        "role_name": "EMPLOYEE",
        "description": "Basic user with limited permissions",
        "permissions": DEFAULT_ROLE_PERMISSIONS[LegacyRole.USER],
    },
]

LEGACY_ROLE_TO_SYSTEM_ROLE: Dict[LegacyRole, str] = {
    LegacyRole.ADMIN: "ADMINISTRATOR",
    LegacyRole.MANAGER: "MANAGER",
    LegacyRole.ACCOUNTANT: "ACCOUNTANT",
    LegacyRole.USER: "EMPLOYEE",
}

_EXECUTIVE = [
    P.REPORT_READ, P.REPORT_READ_ALL, P.REPORT_CREATE,
    P.BUDGET_READ, P.BUDGET_READ_ALL, P.BUDGET_APPROVE,
    P.PAYMENT_REQUEST_READ, P.PAYMENT_REQUEST_READ_ALL, P.PAYMENT_REQUEST_APPROVE,
    P.EXPENSE_REQUEST_READ, P.EXPENSE_REQUEST_READ_ALL, P.EXPENSE_REQUEST_APPROVE,
    P.USER_READ, P.USER_READ_ALL,
    P.COMPANY_READ,
]

# Optional custom (non-system) roles for typical SME org charts
BUSINESS_ROLES: List[dict] = [
    {
        "role_name": "CEO",
        "description": "Chief Executive Officer with access to high-level dashboards and financial insights",
        "permissions": _EXECUTIVE,
    },
    {
        "role_name": "DIRECTOR",
        "description": "Director with access to financial status analysis and key trends",
        "permissions": _EXECUTIVE,
    },
    {
        "role_name": "DEPARTMENT_HEAD",
        "description": "Department Head with visibility into departmental budgets and approval capabilities",
        "permissions": [
            P.REPORT_READ,
            P.BUDGET_READ, P.BUDGET_CREATE, P.BUDGET_UPDATE,
            P.PAYMENT_REQUEST_READ, P.PAYMENT_REQUEST_READ_ALL, P.PAYMENT_REQUEST_CREATE,
            P.PAYMENT_REQUEST_UPDATE, P.PAYMENT_REQUEST_APPROVE,
            P.EXPENSE_REQUEST_READ, P.EXPENSE_REQUEST_READ_ALL, P.EXPENSE_REQUEST_CREATE,
            P.EXPENSE_REQUEST_UPDATE, P.EXPENSE_REQUEST_APPROVE,
            P.USER_READ,
            P.COMPANY_READ,
        ],
    },
    {
        "role_name": "CHIEF_ACCOUNTANT",
        "description": "Chief Accountant with full access to financial management features",
        "permissions": [
            P.REPORT_READ, P.REPORT_READ_ALL, P.REPORT_CREATE,
            P.BUDGET_READ, P.BUDGET_READ_ALL, P.BUDGET_CREATE, P.BUDGET_UPDATE,
            P.PAYMENT_REQUEST_CREATE, P.PAYMENT_REQUEST_READ, P.PAYMENT_REQUEST_READ_ALL,
            P.PAYMENT_REQUEST_UPDATE, P.PAYMENT_REQUEST_DELETE, P.PAYMENT_REQUEST_APPROVE,
            P.EXPENSE_REQUEST_READ, P.EXPENSE_REQUEST_READ_ALL, P.EXPENSE_REQUEST_UPDATE,
            P.EXPENSE_REQUEST_APPROVE,
            P.USER_READ, P.USER_READ_ALL,
            P.COMPANY_READ,
        ],
    },
    {
        "role_name": "STAFF_ACCOUNTANT",
        "description": "Staff Accountant with access to expense categorization and invoice processing",
        "permissions": [
            P.REPORT_READ,
            P.BUDGET_READ,
            P.PAYMENT_REQUEST_CREATE, P.PAYMENT_REQUEST_READ, P.PAYMENT_REQUEST_READ_ALL,
            P.PAYMENT_REQUEST_UPDATE,
            P.EXPENSE_REQUEST_READ, P.EXPENSE_REQUEST_READ_ALL, P.EXPENSE_REQUEST_UPDATE,
            P.USER_READ,
            P.COMPANY_READ,
        ],
    },
]


def _display_name(permission: str) -> str:
    resource, action = permission.split(":", 1)
    words = f"{resource}_{action}".split("_")
    return " ".join([words[0].capitalize()] + [w.lower() for w in words[1:]])


def _category(resource: str) -> str:
    return resource.replace("_", " ").capitalize()


def permission_catalog() -> List[dict]:
    """Rows for the permissions table: name, category, description"""
    return [
        {
            "name": name,
            "category": _category(name.split(":", 1)[0]),
            "description": _display_name(name),
        }
        for name in ALL_PERMISSIONS
    ]


def get_all_permissions() -> List[dict]:
    """Permissions grouped by resource for role management screens"""
    grouped: Dict[str, List[dict]] = {}
    for name in ALL_PERMISSIONS:
        resource = name.split(":", 1)[0]
        grouped.setdefault(resource, []).append({"name": _display_name(name), "value": name})
    return [
        {"category": _category(resource), "permissions": permissions}
        for resource, permissions in grouped.items()
    ]


_KNOWN = frozenset(ALL_PERMISSIONS)


def is_known_permission(permission: str) -> bool:
    return permission in _KNOWN
