import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm

from marketplace.api.deps import SessionDep
from marketplace.core.rate_limit import LOGIN_LIMIT, REGISTER_LIMIT, limiter
from marketplace.core.security import create_access_token
from marketplace.models.user import User
from marketplace.schemas.token import Token
from marketplace.schemas.user import UserCreate, UserRead
from marketplace.services import users as users_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(REGISTER_LIMIT)
async def register_user(request: Request, user_in: UserCreate, session: SessionDep) -> User:
    user = await users_service.create_user(session, **user_in.model_dump())
    logger.info("Registered user %s with role %s", user.id, user.role)
    return user


@router.post("/token", response_model=Token)
@limiter.limit(LOGIN_LIMIT)
async def login_access_token(
    request: Request,
    session: SessionDep,
    form_data: OAuth2PasswordRequestForm = Depends(),
) -> Token:
    user = await users_service.authenticate(session, email=form_data.username, password=form_data.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Incorrect email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")
    return Token(access_token=create_access_token(subject=str(user.id)))
