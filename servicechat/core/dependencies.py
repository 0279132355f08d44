from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from servicechat.core.database import get_db
from servicechat.core.security import decode_access_token
from servicechat.models.admin import Admin

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Admin:
    """
    Dependency for admin-only endpoints.
    The bearer token must be signed with SECRET_KEY and carry ``adminId``.
    """
    if not credentials:
        raise _unauthorized("No token, authorization denied")

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise _unauthorized("Token is not valid")

    admin_id = payload.get("adminId")
    if admin_id is None:
        raise _unauthorized("Token is not valid")

    result = await db.execute(select(Admin).where(Admin.id == str(admin_id)))
    admin = result.scalar_one_or_none()
    if admin is None:
        raise _unauthorized("Admin not found")

    return admin
