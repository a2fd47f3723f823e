from enum import Enum
from typing import List

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from school_app.core.logger import logger
from school_app.core.jwt import verify_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


class Role(str, Enum):
    PLATFORM_ADMIN = "platform_admin"
    ORG_ADMIN = "org_admin"
    TEACHER = "teacher"


async def get_current_user(token: str = Depends(oauth2_scheme)) -> dict:
    """
    Dependency returning the current user's claims from the JWT.

    Args:
        token (str): JWT taken from the Authorization header.

    Returns:
        dict: Claims with the login (sub), role, id and org_id.

    Raises:
        HTTPException: 401 if the token is invalid or expired.
    """
    user_data = verify_token(token)

    if not user_data:
        logger.warning("[AUTHENTICATION] Invalid or expired token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    logger.info(f"[AUTHENTICATION] User authenticated: {user_data['sub']}, role: {user_data['role']}")
    return user_data


def require_roles(allowed_roles: List[Role]):
    """
    Dependency factory checking that the current user has one of the allowed roles.

    Args:
        allowed_roles (List[Role]): Roles allowed to call the endpoint.

    Returns:
        Callable: Dependency performing the check.
    """
    async def role_checker(current_user: dict = Depends(get_current_user)):
        if current_user["role"] not in allowed_roles:
            logger.warning(
                f"[AUTHORIZATION] Access denied for '{current_user['sub']}' | "
                f"Role: {current_user['role']} | Required: {', '.join(allowed_roles)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )

        logger.info(
            f"[AUTHORIZATION] Access granted for '{current_user['sub']}' | "
            f"Role: {current_user['role']} | Allowed: {', '.join(allowed_roles)}"
        )
        return current_user

    return role_checker


def get_organization_id(current_user: dict) -> int:
    """Organization the caller acts for; platform admins have none."""
    organization_id = current_user.get("org_id")
    if organization_id is None:
        logger.warning(f"[AUTHORIZATION] No organization for '{current_user['sub']}'")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This action requires an organization account"
        )
    return organization_id
