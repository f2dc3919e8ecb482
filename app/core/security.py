import hmac
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
import sentry_sdk

from app.core.config import Settings
from app.core.errors import AuthenticationError, AuthorizationError
from app.core.revocation import RevocationStore, refresh_token_key

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _invalid_token() -> AuthenticationError:
    return AuthenticationError(
        "توکن نامعتبر است. لطفا مجددا وارد شوید",
        "Invalid token. Please login again",
    )


def _expired_refresh_token() -> AuthenticationError:
    return AuthenticationError(
        "توکن منقضی شده است. لطفا مجددا وارد شوید",
        "Token expired. Please login again",
    )


class TokenService:
    """Issues and verifies access and refresh tokens.

    Access tokens are stateless. Refresh tokens are signed with their own
    secret and mirrored in the revocation store under ``refresh_token:<id>``;
    only the token currently stored there is accepted, so each new login or
    refresh supersedes the previous one and deleting the entry revokes it.
    """

    def __init__(self, settings: Settings, store: RevocationStore):
        self.store = store
        self.algorithm = settings.jwt_algorithm
        self.access_secret = settings.jwt_secret
        self.refresh_secret = settings.jwt_refresh_secret
        self.access_ttl = timedelta(seconds=settings.jwt_expires_in)
        self.refresh_ttl = timedelta(seconds=settings.jwt_refresh_expires_in)

    def issue_access_token(self, identity: Any) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(identity.id),
            "username": identity.username,
            "email": identity.email,
            "role": getattr(identity.role, "value", identity.role),
            "type": "access",
            "iat": now,
            "exp": now + self.access_ttl,
        }
        return jwt.encode(claims, self.access_secret, algorithm=self.algorithm)

    async def issue_refresh_token(self, identity: Any) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(identity.id),
            "type": "refresh",
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + self.refresh_ttl,
        }
        token = jwt.encode(claims, self.refresh_secret, algorithm=self.algorithm)

        # a token that cannot be tracked cannot be revoked; store errors propagate
        await self.store.set(
            refresh_token_key(claims["sub"]),
            token,
            int(self.refresh_ttl.total_seconds()),
        )
        logger.debug("Refresh token stored", extra={"user_id": claims["sub"]})
        return token

    def verify_access_token(self, token: str) -> dict:
        try:
            claims = jwt.decode(token, self.access_secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            logger.warning("Access token expired")
            raise _invalid_token()
        except JWTError as e:
            sentry_sdk.capture_exception(e)
            logger.warning("Access token verification failed", extra={"error": str(e)})
            raise _invalid_token()

        if claims.get("type") != "access" or not claims.get("sub"):
            logger.warning("Access token has unexpected claims", extra={"type": claims.get("type")})
            raise _invalid_token()
        return claims

    async def verify_refresh_token(self, token: str) -> dict:
        try:
            claims = jwt.decode(token, self.refresh_secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            logger.warning("Refresh token expired")
            raise _expired_refresh_token()
        except JWTError as e:
            sentry_sdk.capture_exception(e)
            logger.warning("Refresh token malformed", extra={"error": str(e)})
            raise _expired_refresh_token()

        user_id = claims.get("sub")
        if claims.get("type") != "refresh" or not user_id:
            logger.warning("Refresh token has unexpected claims", extra={"type": claims.get("type")})
            raise _expired_refresh_token()

        stored = await self.store.get(refresh_token_key(user_id))
        if stored is None:
            logger.warning("Refresh token revoked or expired in store", extra={"user_id": user_id})
            raise _expired_refresh_token()
        if not hmac.compare_digest(stored.encode(), token.encode()):
            logger.warning("Refresh token superseded", extra={"user_id": user_id})
            raise _expired_refresh_token()
        return claims

    async def invalidate_refresh_token(self, identity_ref: str) -> None:
        await self.store.delete(refresh_token_key(str(identity_ref)))
        logger.debug("Refresh token invalidated", extra={"user_id": str(identity_ref)})


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


async def authenticate(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> dict:
    """Verify the bearer access token and attach its claims to the request."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("توکن دسترسی الزامی است", "Access token is required")

    identity = tokens.verify_access_token(credentials.credentials)
    request.state.identity = identity
    logger.debug("Authenticated request", extra={"user_id": identity["sub"]})
    return identity


def authorize(request: Request, allowed_roles: tuple[str, ...]) -> dict:
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise AuthenticationError("لطفا ابتدا وارد شوید", "Please login first")
    if identity.get("role") not in allowed_roles:
        logger.warning(
            "Role not permitted",
            extra={"user_id": identity.get("sub"), "role": identity.get("role")},
        )
        raise AuthorizationError(
            "شما مجوز دسترسی به این بخش را ندارید",
            "You do not have permission to access this resource",
        )
    return identity


def require_roles(*allowed_roles: str):

    def role_checker(request: Request, _identity: dict = Depends(authenticate)) -> dict:
        return authorize(request, allowed_roles)
    return Depends(role_checker)
