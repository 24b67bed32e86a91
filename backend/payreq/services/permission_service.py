"""
Permission Service - Business Logic for RBAC

Authorization is split in two explicit steps: roles are loaded eagerly for a
principal, then ``resolve_permissions`` folds them into a flat set of
permission strings. Principals without any assigned role fall back to the
legacy role shortcut (admin only).
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional, Set, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload, joinedload

from payreq.core.exceptions import (
    DuplicateRoleName, Forbidden, NotFound, RoleInUse, SystemRoleImmutable,
    SystemRoleRenameForbidden, ValidationError,
)
from payreq.core.permissions import (
    BUSINESS_ROLES, LEGACY_ROLE_TO_SYSTEM_ROLE, SYSTEM_ROLES, LegacyRole, P,
    is_known_permission, permission_catalog,
)
from payreq.models import Permission, Role, RolePermission, User, UserRole, utcnow

logger = logging.getLogger(__name__)


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class LegacyGrant:
    """Principal with no assigned roles; only the legacy role counts"""
    role: LegacyRole


@dataclass(frozen=True)
class RoleGrant:
    """Principal whose permissions come from assigned roles"""
    role_ids: FrozenSet[int]


Grant = Union[LegacyGrant, RoleGrant]


@dataclass(frozen=True)
class Principal:
    user_id: int
    company_id: int
    legacy_role: LegacyRole
    role_ids: FrozenSet[int] = field(default_factory=frozenset)
    is_active: bool = True

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            user_id=user.id,
            company_id=user.company_id,
            legacy_role=LegacyRole(user.legacy_role),
            role_ids=frozenset(user.role_ids),
            is_active=bool(user.is_active),
        )

    @property
    def grant(self) -> Grant:
        if not self.role_ids:
            return LegacyGrant(self.legacy_role)
        return RoleGrant(self.role_ids)

    def has_legacy_role(self, roles: Iterable[LegacyRole]) -> bool:
        return self.legacy_role in set(roles)


def resolve_permissions(roles: Iterable[Role]) -> Set[str]:
    """Union of the permission strings carried by the given roles"""
    permissions = set()
    for role in roles:
        if role is None:
            continue
        for link in role.permission_links:
            if link.permission:
                permissions.add(link.permission.name)
    return permissions


def _as_list(required: Union[str, Iterable[str]]) -> List[str]:
    if isinstance(required, str):
        return [required]
    return list(required)


class PermissionService:
    def __init__(self, db: Session):
        self.db = db

    def load_principal_roles(self, principal: Principal) -> List[Role]:
        """Roles assigned to the principal; ids that no longer resolve are skipped"""
        if not principal.role_ids:
            return []
        return self.db.query(Role).options(
            selectinload(Role.permission_links).joinedload(RolePermission.permission)
        ).filter(Role.id.in_(principal.role_ids)).all()

    def get_principal_permissions(self, principal: Principal) -> Set[str]:
        grant = principal.grant
        if isinstance(grant, LegacyGrant):
            if grant.role == LegacyRole.ADMIN:
                return {p["name"] for p in permission_catalog()}
            return set()
        return resolve_permissions(self.load_principal_roles(principal))

    def authorize(self, principal: Principal, required: Union[str, Iterable[str]]) -> Decision:
        """Allow when the principal holds any of the required permissions"""
        required = _as_list(required)
        grant = principal.grant
        if isinstance(grant, LegacyGrant):
            return Decision.ALLOW if grant.role == LegacyRole.ADMIN else Decision.DENY

        granted = resolve_permissions(self.load_principal_roles(principal))
        if granted.intersection(required):
            return Decision.ALLOW
        return Decision.DENY

    def is_allowed(
        self,
        principal: Principal,
        required: Union[str, Iterable[str]],
        legacy_roles: Iterable[LegacyRole] = (),
    ) -> bool:
        """Permission check that also accepts a set of legacy roles"""
        if principal.has_legacy_role(legacy_roles):
            return True
        return self.authorize(principal, required) == Decision.ALLOW

    def require(
        self,
        principal: Principal,
        required: Union[str, Iterable[str]],
        legacy_roles: Iterable[LegacyRole] = (),
    ) -> None:
        required = _as_list(required)
        if self.is_allowed(principal, required, legacy_roles):
            return
        logger.warning(
            "Permission denied for user %s: requires any of %s",
            principal.user_id, ", ".join(required)
        )
        raise Forbidden(f"Forbidden: requires permission {' or '.join(required)}")


class RoleService:
    def __init__(self, db: Session):
        self.db = db
        self.permissions = PermissionService(db)

    # ---------- reads ----------

    def get_by_id(self, role_id: int) -> Optional[Role]:
        return self.db.query(Role).filter(Role.id == role_id).first()

    def get_by_name(self, role_name: str) -> Optional[Role]:
        return self.db.query(Role).filter(Role.role_name == role_name).first()

    def _get_or_404(self, role_id: int, lock: bool = False) -> Role:
        query = self.db.query(Role).filter(Role.id == role_id)
        if lock:
            query = query.with_for_update()
        role = query.first()
        if not role:
            raise NotFound("Role not found")
        return role

    def get_all_roles(self, actor: Principal) -> List[Role]:
        self.permissions.require(actor, P.ROLE_READ_ALL)
        return self.db.query(Role).options(
            selectinload(Role.permission_links).joinedload(RolePermission.permission)
        ).order_by(Role.is_system_role.desc(), Role.role_name).all()

    def get_role(self, actor: Principal, role_id: int) -> Role:
        self.permissions.require(actor, P.ROLE_READ)
        return self._get_or_404(role_id)

    def get_user_roles(self, actor: Principal, user_id: int) -> List[Role]:
        self.permissions.require(actor, P.USER_READ)
        user = self.get_user_in_company(actor, user_id)
        return [link.role for link in user.role_links if link.role]

    def get_user_in_company(self, actor: Principal, user_id: int) -> User:
        user = self.db.query(User).options(
            selectinload(User.role_links).joinedload(UserRole.role)
        ).filter(User.id == user_id, User.company_id == actor.company_id).first()
        if not user:
            raise NotFound("User not found")
        return user

    # ---------- permission sets ----------

    def _validate_permissions(self, permissions: Iterable[str]) -> List[str]:
        names = []
        for name in permissions:
            if name not in names:
                names.append(name)
        unknown = [name for name in names if not is_known_permission(name)]
        if unknown:
            raise ValidationError(f"Unknown permission(s): {', '.join(unknown)}", permissions=unknown)
        return names

    def _permission_rows(self, names: List[str]) -> List[Permission]:
        rows = self.db.query(Permission).filter(Permission.name.in_(names)).all() if names else []
        missing = set(names) - {row.name for row in rows}
        if missing:
            # Catalogue not seeded yet in this database
            for entry in permission_catalog():
                if entry["name"] in missing:
                    row = Permission(**entry)
                    self.db.add(row)
                    rows.append(row)
            self.db.flush()
        return rows

    def _replace_permissions(self, role: Role, names: List[str]) -> None:
        """Swap the role's link rows for the given set inside the current transaction"""
        wanted = set(names)
        current = {link.permission.name: link for link in role.permission_links if link.permission}
        for name, link in current.items():
            if name not in wanted:
                role.permission_links.remove(link)
        for permission in self._permission_rows(names):
            if permission.name not in current:
                role.permission_links.append(RolePermission(permission=permission))
        # Touch the row so the version check covers permission-only edits
        role.updated_at = utcnow()

    # ---------- writes ----------

    def _new_role(self, role_name: str, description: str, permissions: List[str],
                  is_system_role: bool) -> Role:
        role = Role(role_name=role_name, description=description or "", is_system_role=is_system_role)
        try:
            with self.db.begin_nested():
                self.db.add(role)
                self.db.flush()
        except IntegrityError:
            raise DuplicateRoleName(role_name)
        self._replace_permissions(role, permissions)
        self.db.flush()
        return role

    def create_role(
        self,
        actor: Principal,
        role_name: str,
        description: str = "",
        permissions: Iterable[str] = (),
        is_system_role: bool = False,
    ) -> Role:
        self.permissions.require(actor, P.ROLE_CREATE)
        role_name = (role_name or "").strip()
        if not role_name:
            raise ValidationError("Role name is required")
        names = self._validate_permissions(permissions)
        if self.get_by_name(role_name):
            raise DuplicateRoleName(role_name)

        role = self._new_role(role_name, description, names, is_system_role)
        logger.info("Role %s (%s) created by user %s", role.id, role.role_name, actor.user_id)
        return role

    def update_role(
        self,
        actor: Principal,
        role_id: int,
        role_name: Optional[str] = None,
        description: Optional[str] = None,
        permissions: Optional[Iterable[str]] = None,
    ) -> Role:
        self.permissions.require(actor, P.ROLE_UPDATE)
        role = self._get_or_404(role_id)

        if role_name is not None and role_name.strip() != role.role_name:
            role_name = role_name.strip()
            if role.is_system_role:
                raise SystemRoleRenameForbidden()
            if not role_name:
                raise ValidationError("Role name is required")
            clash = self.db.query(Role).filter(Role.role_name == role_name, Role.id != role.id).first()
            if clash:
                raise DuplicateRoleName(role_name)
            role.role_name = role_name

        if description is not None:
            role.description = description

        if permissions is not None:
            self._replace_permissions(role, self._validate_permissions(permissions))

        self.db.flush()
        logger.info("Role %s updated by user %s", role.id, actor.user_id)
        return role

    def delete_role(self, actor: Principal, role_id: int) -> None:
        self.permissions.require(actor, P.ROLE_DELETE)
        role = self._get_or_404(role_id, lock=True)

        if role.is_system_role:
            raise SystemRoleImmutable()

        user_count = self.db.query(UserRole).filter(UserRole.role_id == role.id).count()
        if user_count:
            raise RoleInUse(user_count)

        self.db.delete(role)
        self.db.flush()
        logger.info("Role %s (%s) deleted by user %s", role_id, role.role_name, actor.user_id)

    def assign_roles_to_user(self, actor: Principal, user_id: int, role_ids: Iterable[int]) -> User:
        """Replace the user's assigned role set"""
        self.permissions.require(actor, P.USER_MANAGE)
        user = self.get_user_in_company(actor, user_id)

        wanted = set(role_ids)
        roles = self.db.query(Role).filter(Role.id.in_(wanted)).with_for_update().all() if wanted else []
        if len(roles) != len(wanted):
            missing = sorted(wanted - {role.id for role in roles})
            raise ValidationError("One or more role IDs are invalid", role_ids=missing)

        self._set_user_roles(user, roles)
        self.db.flush()
        logger.info("User %s assigned roles %s by user %s", user.id, sorted(wanted), actor.user_id)
        return user

    def _set_user_roles(self, user: User, roles: List[Role]) -> None:
        wanted = {role.id for role in roles}
        current = {link.role_id: link for link in user.role_links}
        for role_id, link in current.items():
            if role_id not in wanted:
                user.role_links.remove(link)
        for role in roles:
            if role.id not in current:
                user.role_links.append(UserRole(role=role))

    # ---------- seeding ----------

    def ensure_system_roles(self) -> int:
        """Create any missing system role; existing ones are left untouched"""
        created = 0
        for definition in SYSTEM_ROLES:
            if self.get_by_name(definition["role_name"]):
                continue
            self._new_role(
                definition["role_name"], definition["description"],
                list(definition["permissions"]), is_system_role=True
            )
            created += 1
        if created:
            logger.info("Seeded %d system role(s)", created)
        return created

    def ensure_business_roles(self) -> int:
        """Create or refresh the optional custom business roles"""
        touched = 0
        for definition in BUSINESS_ROLES:
            role = self.get_by_name(definition["role_name"])
            if role is None:
                self._new_role(
                    definition["role_name"], definition["description"],
                    list(definition["permissions"]), is_system_role=False
                )
            else:
                role.description = definition["description"]
                self._replace_permissions(role, list(definition["permissions"]))
            touched += 1
        self.db.flush()
        logger.info("Ensured %d business role(s)", touched)
        return touched

    def migrate_legacy_users(self) -> int:
        """Give every user without roles the system role matching their legacy role"""
        roles_by_name = {
            role.role_name: role
            for role in self.db.query(Role).filter(Role.is_system_role.is_(True)).all()
        }
        users = self.db.query(User).filter(~User.role_links.any()).all()

        migrated = 0
        for user in users:
            role_name = LEGACY_ROLE_TO_SYSTEM_ROLE.get(LegacyRole(user.legacy_role))
            role = roles_by_name.get(role_name)
            if role is None:
                logger.warning("No system role %s for user %s; skipped", role_name, user.id)
                continue
            user.role_links.append(UserRole(role=role))
            migrated += 1

        self.db.flush()
        logger.info("Migrated %d legacy user(s) to role-based access", migrated)
        return migrated


def seed_permissions(db: Session):
    """Seed default permissions into the database"""
    existing = {p.name for p in db.query(Permission.name).all()}

    for perm_data in permission_catalog():
        if perm_data["name"] not in existing:
            perm = Permission(**perm_data)
            db.add(perm)

    db.flush()
