import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from prometheus_client import Counter

from app.models.schemas import (
    AccessTokenResponse,
    AuthResponse,
    ChangePasswordIn,
    LoginIn,
    MessageOut,
    ProfileOut,
    ProfileResponse,
    ProfileUpdate,
    ProfileUpdateResponse,
    RefreshIn,
    UserCreate,
    UserOut,
)
from app.core.errors import AuthenticationError, BadRequestError, NotFoundError
from app.core.security import (
    TokenService,
    authenticate,
    get_password_hash,
    get_token_service,
    verify_password,
)
from app.services.users import UserRepository, get_user_repository

logger = logging.getLogger(__name__)

router = APIRouter()

LOGIN_ATTEMPTS = Counter(
    "auth_login_attempts_total",
    "Login attempts by outcome",
    ["outcome"],
)
TOKEN_REFRESHES = Counter(
    "auth_token_refreshes_total",
    "Access tokens minted from a refresh token"
)


def _user_not_found() -> NotFoundError:
    return NotFoundError("کاربر یافت نشد", "User not found")


def _refresh_token_required(payload: RefreshIn) -> str:
    if not payload.refresh_token:
        raise BadRequestError("توکن بازیابی الزامی است", "Refresh token is required")
    return payload.refresh_token


async def _issue_pair(user, tokens: TokenService) -> AuthResponse:
    access = tokens.issue_access_token(user)
    refresh = await tokens.issue_refresh_token(user)
    return AuthResponse(
        user=UserOut.model_validate(user),
        access_token=access,
        refresh_token=refresh,
    )


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=AuthResponse)
async def register(
    payload: UserCreate,
    users: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
):
    logger.info("Register attempt", extra={"username": payload.username})

    if (
        await users.find_by_username_or_email(payload.username)
        or await users.find_by_email(payload.email)
    ):
        raise BadRequestError(
            "نام کاربری یا ایمیل قبلاً ثبت شده است",
            "Username or email already exists",
        )

    user = await users.create(
        username=payload.username,
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    logger.info("User registered", extra={"user_id": user.id, "username": user.username})
    return await _issue_pair(user, tokens)


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginIn,
    users: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
):
    logger.info("Login attempt", extra={"username": payload.username})
    user = await users.find_by_username_or_email(payload.username)
    if not user or not verify_password(payload.password, user.hashed_password):
        logger.warning("Failed login", extra={"username": payload.username})
        LOGIN_ATTEMPTS.labels(outcome="failure").inc()
        raise AuthenticationError(
            "نام کاربری یا رمز عبور نادرست است",
            "Invalid username or password",
        )

    user.last_login = datetime.now(timezone.utc)
    await users.save(user)

    logger.info("Login success", extra={"user_id": user.id, "username": user.username})
    LOGIN_ATTEMPTS.labels(outcome="success").inc()
    return await _issue_pair(user, tokens)


@router.post("/refresh-token", response_model=AccessTokenResponse)
async def refresh_token(
    payload: RefreshIn,
    users: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
):
    claims = await tokens.verify_refresh_token(_refresh_token_required(payload))

    user = await users.find_by_id(claims["sub"])
    if user is None:
        raise _user_not_found()

    logger.debug("Access token refreshed", extra={"user_id": user.id})
    TOKEN_REFRESHES.inc()
    return AccessTokenResponse(access_token=tokens.issue_access_token(user))


@router.post("/logout", response_model=MessageOut)
async def logout(
    payload: RefreshIn,
    identity: dict = Depends(authenticate),
    tokens: TokenService = Depends(get_token_service),
):
    _refresh_token_required(payload)
    await tokens.invalidate_refresh_token(identity["sub"])

    logger.info("User logged out", extra={"user_id": identity["sub"]})
    return MessageOut(message="خروج با موفقیت انجام شد", message_en="Logout successful")


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    identity: dict = Depends(authenticate),
    users: UserRepository = Depends(get_user_repository),
):
    user = await users.find_by_id(identity["sub"])
    if user is None:
        raise _user_not_found()
    return ProfileResponse(user=ProfileOut.model_validate(user))


@router.put("/profile", response_model=ProfileUpdateResponse)
async def update_profile(
    payload: ProfileUpdate,
    identity: dict = Depends(authenticate),
    users: UserRepository = Depends(get_user_repository),
):
    user = await users.find_by_id(identity["sub"])
    if user is None:
        raise _user_not_found()

    if payload.email and payload.email.lower() != user.email:
        if await users.find_by_email(payload.email):
            raise BadRequestError("این ایمیل قبلاً ثبت شده است", "Email already in use")
        user.email = payload.email.lower()

    if payload.first_name:
        user.first_name = payload.first_name
    if payload.last_name:
        user.last_name = payload.last_name

    await users.save(user)
    logger.info("User profile updated", extra={"user_id": user.id})
    return ProfileUpdateResponse(
        message="پروفایل با موفقیت به‌روز شد",
        message_en="Profile updated successfully",
        user=UserOut.model_validate(user),
    )


@router.post("/change-password", response_model=MessageOut)
async def change_password(
    payload: ChangePasswordIn,
    identity: dict = Depends(authenticate),
    users: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
):
    if not payload.current_password or not payload.new_password or not payload.confirm_password:
        raise BadRequestError("تمام فیلدها الزامی هستند", "All fields are required")
    if payload.new_password != payload.confirm_password:
        raise BadRequestError(
            "تایید رمز عبور با رمز عبور جدید مطابقت ندارد",
            "New password and confirmation do not match",
        )
    if len(payload.new_password) < 6:
        raise BadRequestError(
            "رمز عبور جدید باید حداقل 6 کاراکتر باشد",
            "New password must be at least 6 characters",
        )

    user = await users.find_by_id(identity["sub"])
    if user is None:
        raise _user_not_found()

    if not verify_password(payload.current_password, user.hashed_password):
        raise AuthenticationError("رمز عبور فعلی نادرست است", "Current password is incorrect")

    # revoke first: if the store is down the password must stay unchanged.
    # already-issued access tokens stay valid until they expire
    await tokens.invalidate_refresh_token(user.id)

    user.hashed_password = get_password_hash(payload.new_password)
    await users.save(user)

    logger.info("User password changed", extra={"user_id": user.id})
    return MessageOut(message="رمز عبور با موفقیت تغییر کرد", message_en="Password changed successfully")
