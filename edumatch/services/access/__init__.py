"""
Document Access Services
Authorization of file reads by ownership and application relationships
"""

from edumatch.services.access.models import (
    AccessDecision,
    AccessMode,
    AccessRule,
    FetchResult,
    PresignedUrl,
)
from edumatch.services.access.ownership import OwnershipIndex
from edumatch.services.access.relationships import (
    AccessResolver,
    ApplicantResolver,
    DeniedRoleResolver,
    InstitutionResolver,
    RelationshipResolver,
    StaffResolver,
)
from edumatch.services.access.repository import AccessRepository, SqlAccessRepository
from edumatch.services.access.service import (
    DocumentAccessService,
    clamp_expiry,
    get_access_service,
)

__all__ = [
    # Main service
    "DocumentAccessService",
    "get_access_service",
    "clamp_expiry",
    # Resolution
    "OwnershipIndex",
    "RelationshipResolver",
    "AccessResolver",
    "ApplicantResolver",
    "InstitutionResolver",
    "StaffResolver",
    "DeniedRoleResolver",
    # Data access
    "AccessRepository",
    "SqlAccessRepository",
    # Models
    "AccessDecision",
    "AccessMode",
    "AccessRule",
    "FetchResult",
    "PresignedUrl",
]
