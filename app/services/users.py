import asyncio
import logging

from fastapi import Depends, Request
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.errors import BadRequestError, InternalServerError
from app.models.user import User

logger = logging.getLogger(__name__)


class UserRepository:
    """Credential store over the ``users`` table.

    Lookups return ``None`` for unknown users. Database failures and timeouts
    are raised as InternalServerError; unique-constraint violations on
    ``create``/``save`` become BadRequestError.
    """

    def __init__(self, session: AsyncSession, timeout: float = 5.0):
        self.session = session
        self.timeout = timeout

    async def _run(self, awaitable, action: str):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except (SQLAlchemyError, asyncio.TimeoutError) as e:
            if isinstance(e, IntegrityError):
                raise
            logger.error("User store %s failed", action, exc_info=e)
            raise InternalServerError(
                "خطا در دسترسی به پایگاه داده",
                "Database error",
                retryable=False,
            ) from e

    async def find_by_username_or_email(self, identifier: str) -> User | None:
        stmt = select(User).where(
            or_(User.username == identifier, User.email == identifier.lower())
        )
        result = await self._run(self.session.execute(stmt), "lookup")
        return result.scalars().first()

    async def find_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.lower())
        result = await self._run(self.session.execute(stmt), "lookup")
        return result.scalars().first()

    async def find_by_id(self, user_id: str) -> User | None:
        return await self._run(self.session.get(User, user_id), "lookup")

    async def create(self, **fields) -> User:
        user = User(**fields)
        self.session.add(user)
        await self._commit("create")
        logger.info("User created", extra={"user_id": user.id, "username": user.username})
        return user

    async def save(self, user: User) -> None:
        self.session.add(user)
        await self._commit("save")

    async def _commit(self, action: str) -> None:
        try:
            await self._run(self.session.commit(), action)
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning("User store %s hit a unique constraint", action)
            raise BadRequestError(
                "نام کاربری یا ایمیل قبلاً ثبت شده است",
                "Username or email already exists",
            ) from e
        except InternalServerError:
            await self.session.rollback()
            raise


def get_user_repository(
    request: Request,
    session: AsyncSession = Depends(get_db),
) -> UserRepository:
    return UserRepository(session, timeout=request.app.state.settings.store_timeout)
