from collections.abc import Callable
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import ValidationError
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.core.config import settings
from marketplace.db.session import get_session
from marketplace.models.user import STAFF_ROLES, User, UserRole
from marketplace.schemas.token import TokenPayload
from marketplace.services.app_settings import SettingsCache, get_settings_cache

SessionDep = Annotated[AsyncSession, Depends(get_session)]
SettingsCacheDep = Annotated[SettingsCache, Depends(get_settings_cache)]

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/token", auto_error=False)


async def _user_from_token(session: AsyncSession, token: str) -> User:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        token_data = TokenPayload(**payload)
    except (JWTError, ValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials") from exc

    if not token_data.sub or not token_data.sub.isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user = await session.get(User, int(token_data.sub))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User no longer exists")
    return user


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    session: SessionDep,
) -> User:
    return await _user_from_token(session, token)


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return current_user


async def get_optional_user(
    token: Annotated[Optional[str], Depends(optional_oauth2_scheme)],
    session: SessionDep,
) -> Optional[User]:
    """The caller if a valid bearer token was sent, otherwise ``None``."""
    if not token:
        return None
    try:
        user = await _user_from_token(session, token)
    except HTTPException:
        return None
    return user if user.is_active else None


def require_roles(*roles: UserRole) -> Callable:
    async def dependency(current_user: Annotated[User, Depends(get_current_active_user)]) -> User:
        if roles and current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient privileges")
        return current_user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_active_user)]
OptionalUser = Annotated[Optional[User], Depends(get_optional_user)]
StaffUser = Annotated[User, Depends(require_roles(*STAFF_ROLES))]
MasterUser = Annotated[User, Depends(require_roles(UserRole.master))]
PartnerUser = Annotated[User, Depends(require_roles(UserRole.partner))]
