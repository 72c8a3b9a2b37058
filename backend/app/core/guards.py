"""
Security guards for role-based access control.

Account-level view/edit permissions are enforced by the ledger services;
these guards only gate whole endpoints by team role.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from backend.app.models.enums import UserRole, PERMISSION_ROLES, TEAM_ADMIN_ROLES
from backend.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/users")
        async def add_user(current_user: dict = Depends(require_role([UserRole.KEY_PERSON]))):
            ...

    Args:
        allowed_roles: List of UserRole enums that are allowed to access the endpoint

    Returns:
        FastAPI dependency function that validates user role

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        # Convert string role to UserRole enum
        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


# Team management (add/remove users)
require_team_admin = require_role(list(TEAM_ADMIN_ROLES))

# Anyone who may touch the ledger at all; limitedUser is excluded
require_ledger_member = require_role([UserRole.KEY_PERSON, *PERMISSION_ROLES])
