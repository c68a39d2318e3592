"""
API Dependencies
Common dependencies for API routes
"""

from typing import Optional
from fastapi import Depends, Header

from edumatch.core.exceptions import AuthorizationException
from edumatch.core.identity import Actor, IdentityResolver, Role, extract_bearer_token
from edumatch.db.session import get_session_factory
from edumatch.services.access.service import DocumentAccessService, get_access_service

# Global identity resolver
_identity_resolver: Optional[IdentityResolver] = None


def get_identity_resolver() -> IdentityResolver:
    """Get the identity resolver bound to the database session factory"""
    global _identity_resolver
    if _identity_resolver is None:
        _identity_resolver = IdentityResolver(get_session_factory())
    return _identity_resolver


def get_document_access_service() -> DocumentAccessService:
    """Dependency wrapper so routes can be tested with overrides"""
    return get_access_service()


async def get_current_actor(
    authorization: Optional[str] = Header(None),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Actor:
    """
    Dependency to get the acting user from the JWT bearer token

    Args:
        authorization: Authorization header with Bearer token
        resolver: Identity resolver

    Returns:
        Authenticated actor with role and profile ids

    Raises:
        AuthenticationException: Missing or invalid token, user not found
    """
    token = extract_bearer_token(authorization)
    return await resolver.get_authenticated_actor(token)


async def get_optional_actor(
    authorization: Optional[str] = Header(None),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Actor:
    """
    Optional dependency to get the acting user
    Returns the anonymous actor when no token is sent; a bad token still fails
    """
    token = extract_bearer_token(authorization)
    return await resolver.get_optional_actor(token)


async def get_current_applicant(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Require an applicant with a profile"""
    if actor.role is not Role.APPLICANT or not actor.applicant_id:
        raise AuthorizationException(message="Applicant profile required")
    return actor
