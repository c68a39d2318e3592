"""
Identity Resolution
Turns a bearer token into the acting user's id, role and profile ids
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from edumatch.core.exceptions import AuthenticationException, UpstreamFailureException
from edumatch.core.logging import get_logger
from edumatch.core.security import verify_access_token

logger = get_logger(__name__)

ANONYMOUS_ID = "anonymous"


class Role(str, Enum):
    """Actor roles"""

    APPLICANT = "applicant"
    INSTITUTION = "institution"
    ADMIN = "admin"
    MODERATOR = "moderator"
    UNAUTHENTICATED = "unauthenticated"
    # Authenticated, but with a role this service grants nothing to
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Role":
        try:
            role = cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN
        # The user table cannot mint anonymous actors
        return cls.UNKNOWN if role is cls.UNAUTHENTICATED else role


class Actor(BaseModel):
    """The user a request acts for; fixed for the lifetime of the request"""

    model_config = ConfigDict(frozen=True)

    id: str
    role: Role
    applicant_id: Optional[str] = None
    institution_id: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Actor":
        return cls(id=ANONYMOUS_ID, role=Role.UNAUTHENTICATED)

    @property
    def is_authenticated(self) -> bool:
        return self.role is not Role.UNAUTHENTICATED


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer ...`` header"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationException(message="Invalid authorization header format")
    return token.strip()


class IdentityResolver:
    """Session service adapter backed by JWT access tokens and the users table"""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_authenticated_actor(self, token: Optional[str]) -> Actor:
        """
        Resolve the actor for a token

        Raises:
            AuthenticationException: Missing or invalid token, unknown or
                inactive user
        """
        if not token:
            raise AuthenticationException(
                message="Authentication required. Please log in to access this file."
            )

        payload = verify_access_token(token)
        return await self._load_actor(str(payload["sub"]))

    async def get_optional_actor(self, token: Optional[str]) -> Actor:
        """Resolve the actor, or the anonymous actor when no token is sent"""
        if not token:
            return Actor.anonymous()
        return await self.get_authenticated_actor(token)

    async def _load_actor(self, user_id: str) -> Actor:
        from edumatch.db.models import Applicant, Institution, User

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(User.role, User.is_active).where(User.id == user_id)
                )
                row = result.one_or_none()
                if row is None or not row.is_active:
                    raise AuthenticationException(message="Invalid token or user inactive")

                role = Role.parse(row.role)
                applicant_id = None
                institution_id = None

                if role is Role.APPLICANT:
                    result = await session.execute(
                        select(Applicant.applicant_id).where(Applicant.user_id == user_id)
                    )
                    applicant_id = result.scalar_one_or_none()
                elif role is Role.INSTITUTION:
                    result = await session.execute(
                        select(Institution.institution_id).where(Institution.user_id == user_id)
                    )
                    institution_id = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to resolve identity for user {user_id}: {e}")
            raise UpstreamFailureException(
                message="Failed to resolve identity",
                source="database",
            )

        logger.debug(f"Resolved actor {user_id} ({role.value})")
        return Actor(
            id=user_id,
            role=role,
            applicant_id=applicant_id,
            institution_id=institution_id,
        )
