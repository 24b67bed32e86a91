"""
Role Management API Routes
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from payreq.core.database import get_db
from payreq.core.permissions import P, get_all_permissions
from payreq.core.security import get_current_principal, PermissionChecker
from payreq.schemas import (
    RoleCreate, RoleUpdate, RoleResponse, RoleAssignment, UserRolesResponse,
    PermissionGroup, PrincipalPermissionsResponse, MessageResponse
)
from payreq.services.permission_service import PermissionService, RoleService

router = APIRouter(prefix="/roles", tags=["Roles"])


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    """List all roles, system roles first"""
    return RoleService(db).get_all_roles(principal)


@router.get("/permissions/all", response_model=List[PermissionGroup],
            dependencies=[Depends(PermissionChecker([P.ROLE_READ]))])
async def list_permissions():
    """Permission catalogue grouped by category"""
    return get_all_permissions()


@router.get("/me/permissions", response_model=PrincipalPermissionsResponse)
async def get_my_permissions(
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    """Effective permissions of the calling user"""
    return PrincipalPermissionsResponse(
        user_id=principal.user_id,
        legacy_role=principal.legacy_role,
        role_ids=sorted(principal.role_ids),
        permissions=sorted(PermissionService(db).get_principal_permissions(principal))
    )


@router.get("/user/{user_id}", response_model=UserRolesResponse)
async def get_user_roles(
    user_id: int,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    role_service = RoleService(db)
    roles = role_service.get_user_roles(principal, user_id)
    user = role_service.get_user_in_company(principal, user_id)
    return UserRolesResponse(
        user_id=user.id,
        legacy_role=user.legacy_role,
        roles=[RoleResponse.model_validate(role) for role in roles]
    )


@router.post("/assign/{user_id}", response_model=UserRolesResponse)
async def assign_roles(
    user_id: int,
    assignment: RoleAssignment,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    """Replace the set of roles assigned to a user"""
    user = RoleService(db).assign_roles_to_user(principal, user_id, assignment.role_ids)
    db.commit()
    db.refresh(user)
    return UserRolesResponse(
        user_id=user.id,
        legacy_role=user.legacy_role,
        roles=[RoleResponse.model_validate(link.role) for link in user.role_links]
    )


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    return RoleService(db).get_role(principal, role_id)


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role_data: RoleCreate,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    """Create a custom role"""
    role = RoleService(db).create_role(
        principal,
        role_name=role_data.role_name,
        description=role_data.description,
        permissions=role_data.permissions
    )
    db.commit()
    db.refresh(role)
    return role


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    role_data: RoleUpdate,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    role = RoleService(db).update_role(
        principal,
        role_id,
        role_name=role_data.role_name,
        description=role_data.description,
        permissions=role_data.permissions
    )
    db.commit()
    db.refresh(role)
    return role


@router.delete("/{role_id}", response_model=MessageResponse)
async def delete_role(
    role_id: int,
    db: Session = Depends(get_db),
    principal = Depends(get_current_principal)
):
    RoleService(db).delete_role(principal, role_id)
    db.commit()
    return {"message": "Role deleted successfully"}
