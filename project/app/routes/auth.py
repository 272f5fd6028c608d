# app/routes/auth.py

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jwt import encode, decode, ExpiredSignatureError, InvalidTokenError
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select

from app.config import settings
from app.models.user import User
from app.schemas.user import Actor, RegisterResponse, TokenResponse, UserCreate, UserResponse
from app.services.referral import apply_code, assign_code
from app.utils.errors import AppError, Conflict, Forbidden, Unauthorized
from app.utils.security import hash_password, verify_password

router = APIRouter()

# ────────────── JWT ──────────────
SECRET_KEY = settings.AUTH_SECRET_KEY
ACCESS_TOKEN_EXPIRE_MINUTES = settings.AUTH_TOKEN_EXPIRE_MINUTES
ALGORITHM = "HS256"
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    JWT for the given claims, e.g. {"sub": "42", "role": "customer"}.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def token_for(user: User) -> str:
    return create_access_token(
        {"sub": str(user.id), "role": user.role},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )


async def get_current_actor(request: Request, token: str = Depends(oauth2_scheme)) -> Actor:
    """
    Validates the bearer token and returns the caller as an Actor(id, role).
    The role is re-read from the users table so a demoted account loses access immediately.

    - 401 – token expired, invalid, or the user no longer exists
    """
    log = request.app.state.log
    try:
        payload = decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id = int(payload.get("sub"))
    except ExpiredSignatureError:
        await log.log_warning("auth", "Token expired")
        raise Unauthorized("Token expired")
    except (InvalidTokenError, TypeError, ValueError):
        await log.log_warning("auth", "Invalid token")
        raise Unauthorized("Token invalid")

    user = await request.state.db.get(User, user_id)
    if user is None:
        raise Unauthorized("User not found")

    return Actor(id=user.id, role=user.role)


def require_role(*roles: str):
    """Dependency factory: the actor must have one of the given roles, otherwise 403."""
    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise Forbidden("Access denied")
        return actor
    return dependency


admin_required = require_role("admin")


# ────────────── TOKEN ──────────────
@router.post(
    "/token",
    response_model=TokenResponse,
    summary="Obtain a JWT (login with email and password)",
    responses={
        200: {"description": "Token issued"},
        401: {"description": "Wrong email or password"},
        400: {"description": "Malformed form data"},
        500: {"description": "Internal server error"},
    },
)
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
):
    """
    Checks email (form field `username`) and password and returns a bearer token
    together with the public profile of the user.
    """
    db = request.state.db
    log = request.app.state.log
    try:
        result = await db.execute(select(User).where(User.email == form_data.username.lower()))
        user = result.scalar_one_or_none()

        if not user or not verify_password(form_data.password, user.password):
            await log.log_warning("auth", "Failed login", {"username": form_data.username})
            raise Unauthorized("Wrong email or password")

        await log.log_info("auth", "User logged in", {"user_id": user.id, "role": user.role})
        return {
            "access_token": token_for(user),
            "token_type": "bearer",
            "user": UserResponse.model_validate(user),
        }
    except AppError:
        raise
    except Exception as e:
        await log.log_error("auth", f"Token error: {e}", {"username": form_data.username})
        raise


# ────────────── Customer registration ──────────────
@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a customer, optionally with a referral code",
    responses={
        201: {"description": "User registered"},
        409: {"description": "Email already registered"},
        400: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)
async def register_user(payload: UserCreate, request: Request):
    """
    Creates a `customer` account and its own referral code.

    A referral code that cannot be applied does not fail the registration:
    the account is kept and `referral_error` explains why no discount was granted.
    """
    db = request.state.db
    log = request.app.state.log

    user = User(
        name=payload.name,
        email=payload.email.lower(),
        password=hash_password(payload.password),
        role="customer",
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"User with email '{payload.email}' already exists")

    await assign_code(db, user)
    await db.commit()
    await log.log_info("auth", "User registered", {"user_id": user.id})

    response = {"user": UserResponse.model_validate(user)}
    if payload.referral_code:
        try:
            referral = await apply_code(db, log, payload.referral_code, user.id)
            await db.commit()
            response.update(referral_applied=True, discount=referral.referred_reward_value)
        except AppError as e:
            await db.rollback()
            response.update(referral_applied=False, referral_error=e.message)
    return response


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Profile of the authenticated user",
)
async def read_me(request: Request, actor: Actor = Depends(get_current_actor)):
    return await request.state.db.get(User, actor.id)
