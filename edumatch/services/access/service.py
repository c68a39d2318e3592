"""
Document Access Service
Single entry point for authorizing and serving stored files
"""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

from edumatch.core.cache import DecisionCache, NullDecisionCache, create_decision_cache
from edumatch.core.config import settings
from edumatch.core.exceptions import (
    AuthenticationException,
    InvalidLocatorException,
    PermissionException,
)
from edumatch.core.identity import Actor
from edumatch.core.locators import normalize_locator
from edumatch.core.logging import get_logger
from edumatch.services.access.models import (
    AccessDecision,
    AccessMode,
    AccessRule,
    FetchResult,
    PresignedUrl,
)
from edumatch.services.access.ownership import OwnershipIndex
from edumatch.services.access.relationships import RelationshipResolver
from edumatch.services.access.repository import AccessRepository

if TYPE_CHECKING:
    from edumatch.storage.client import ObjectStorage

logger = get_logger(__name__)

# Global access service instance
_access_service: Optional["DocumentAccessService"] = None


def get_access_service() -> "DocumentAccessService":
    """
    Get the global access service instance

    Returns:
        DocumentAccessService wired to the database, MinIO and the
        configured decision cache
    """
    global _access_service
    if _access_service is None:
        from edumatch.db.session import get_session_factory
        from edumatch.services.access.repository import SqlAccessRepository
        from edumatch.storage.client import get_object_storage

        _access_service = DocumentAccessService(
            repository=SqlAccessRepository(get_session_factory()),
            storage=get_object_storage(),
            cache=create_decision_cache(),
        )
    return _access_service


def clamp_expiry(key: str, requested: Optional[int] = None) -> int:
    """
    Clamp a presigned URL lifetime

    Args:
        key: Canonical storage key
        requested: Requested lifetime in seconds; None, zero and negative
            values fall back to the default

    Returns:
        Lifetime within [1, PRESIGNED_URL_MAX_EXPIRY], further capped at
        SENSITIVE_URL_MAX_EXPIRY for document-like keys
    """
    if requested is None or requested <= 0:
        requested = settings.PRESIGNED_URL_DEFAULT_EXPIRY
    expires = max(1, min(requested, settings.PRESIGNED_URL_MAX_EXPIRY))

    path = "/" + key
    if any(marker in path for marker in settings.SENSITIVE_KEY_MARKERS):
        expires = min(expires, settings.SENSITIVE_URL_MAX_EXPIRY)
    return expires


class DocumentAccessService:
    """
    Authorizes file reads and fetches allowed objects

    Evaluation order: normalize, public objects (general-image mode only),
    decision cache, structural ownership, relationship rules. Storage is
    touched only after an Allow.
    """

    def __init__(
        self,
        repository: AccessRepository,
        storage: "ObjectStorage",
        cache: Optional[DecisionCache] = None,
        ownership: Optional[OwnershipIndex] = None,
        resolver: Optional[RelationshipResolver] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.cache = cache or NullDecisionCache()
        self.ownership = ownership or OwnershipIndex()
        self.resolver = resolver or RelationshipResolver(repository)
        logger.debug("Document access service created")

    async def authorize(self, actor: Actor, locator: str, mode: AccessMode) -> AccessDecision:
        """
        Decide whether the actor may read the object behind a locator

        Args:
            actor: Resolved request actor
            locator: URL, s3:// URI or key as stored in the database
            mode: Route variant

        Returns:
            AccessDecision with the rule that fired or the nearest miss

        Raises:
            InvalidLocatorException: Locator cannot be normalized
            AuthenticationException: Anonymous actor on a non-public object
        """
        key = normalize_locator(locator)
        if key is None:
            logger.warning(f"Rejected locator from {actor.id}: {locator!r}")
            raise InvalidLocatorException()

        if mode is AccessMode.GENERAL_IMAGE and self.ownership.is_public(key):
            return self._audit(actor, mode, AccessDecision.allow(AccessRule.PUBLIC_OBJECT, key))

        if not actor.is_authenticated:
            raise AuthenticationException(
                message="Authentication required. Please log in to access this file."
            )

        hit = await self.cache.get(actor.id, key, mode.value)
        if hit is not None:
            return self._audit(actor, mode, hit, cached=True)

        if self.ownership.is_owner(actor, key):
            decision = AccessDecision.allow(AccessRule.OWNER, key)
        else:
            decision = await self.resolver.resolve(actor, key, mode)

        if decision.cacheable:
            await self.cache.put(actor.id, key, mode.value, decision)

        return self._audit(actor, mode, decision)

    async def authorize_and_fetch(
        self, actor: Actor, locator: str, mode: AccessMode
    ) -> FetchResult:
        """
        Authorize, then open the object for streaming

        Raises:
            NotFoundException: Allowed, but the object does not exist
            StorageException: Allowed, but storage failed
        """
        decision = await self.authorize(actor, locator, mode)
        if not decision.allowed:
            return FetchResult(allowed=False, key=decision.key, reason=decision.reason)

        stored = await self.storage.get_object(decision.key)
        return FetchResult(
            allowed=True,
            key=decision.key,
            stream=stored.stream,
            content_type=stored.content_type,
            content_length=stored.content_length,
        )

    async def presign(
        self,
        actor: Actor,
        locator: str,
        expires_in: Optional[int] = None,
        mode: AccessMode = AccessMode.GENERAL_IMAGE,
    ) -> PresignedUrl:
        """
        Issue a presigned GET URL for an allowed object

        Raises:
            PermissionException: Access denied
        """
        decision = await self.authorize(actor, locator, mode)
        if not decision.allowed:
            raise PermissionException(reason=decision.reason)

        expires = clamp_expiry(decision.key, expires_in)
        url = await self.storage.get_presigned_url(decision.key, expires)
        logger.info(f"Presigned URL issued to {actor.id} for {decision.key} ({expires}s)")
        return PresignedUrl(
            url=url,
            expires_in=expires,
            expires_at=datetime.utcnow() + timedelta(seconds=expires),
        )

    def _audit(
        self, actor: Actor, mode: AccessMode, decision: AccessDecision, cached: bool = False
    ) -> AccessDecision:
        message = (
            f"actor={actor.id} role={actor.role.value} key={decision.key} "
            f"mode={mode.value} rule={decision.reason} cached={cached}"
        )
        if decision.allowed:
            logger.info(f"Access allowed: {message}")
        else:
            logger.warning(f"Access denied: {message}")
        return decision
