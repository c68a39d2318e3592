"""
Access Models
Decision types and the lookup records the relationship resolver works on
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class AccessMode(str, Enum):
    """Route variant a file is requested through"""

    # Application documents: owner and receiving institution only
    STRICT_DOCUMENT = "strict-document"
    # Profile images and message attachments
    GENERAL_IMAGE = "general-image"


class AccessRule(str, Enum):
    """
    Rule codes recorded on every decision

    Allowed decisions carry the rule that fired. Denied decisions carry the
    nearest miss, or one of the explicit deny codes at the bottom.
    """

    PUBLIC_OBJECT = "public_object"
    OWNER = "owner"
    APPLICANT_APPLICATION_DETAIL = "applicant_application_detail"
    APPLICANT_DOCUMENT = "applicant_document"
    INSTITUTION_APPLICATION_DETAIL = "institution_application_detail"
    INSTITUTION_SNAPSHOT = "institution_snapshot"
    THREAD_ATTACHMENT = "thread_attachment"
    STAFF_PROFILE_ACCESS = "staff_profile_access"

    INSTITUTION_BOUNDARY = "institution_boundary"
    MISSING_PROFILE = "missing_profile"
    ROLE_NOT_PERMITTED = "role_not_permitted"
    UPSTREAM_FAILURE = "upstream_failure"


class AccessDecision(BaseModel):
    """Outcome of one authorization"""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    rule: AccessRule
    key: Optional[str] = None

    @classmethod
    def allow(cls, rule: AccessRule, key: Optional[str] = None) -> "AccessDecision":
        return cls(allowed=True, rule=rule, key=key)

    @classmethod
    def deny(cls, rule: AccessRule, key: Optional[str] = None) -> "AccessDecision":
        return cls(allowed=False, rule=rule, key=key)

    @property
    def reason(self) -> str:
        return self.rule.value

    @property
    def cacheable(self) -> bool:
        # Transient faults must not pin a deny for the whole TTL
        return self.rule is not AccessRule.UPSTREAM_FAILURE


class PresignedUrl(BaseModel):
    """Time-limited direct download link"""

    url: str = Field(description="Presigned GET URL")
    expires_in: int = Field(description="Validity in seconds")
    expires_at: datetime = Field(description="Expiry timestamp (UTC)")


@dataclass
class StoredObject:
    """Open object read from storage"""

    stream: AsyncIterator[bytes]
    content_type: str = "application/octet-stream"
    content_length: Optional[int] = None


@dataclass
class FetchResult:
    """Result of authorize_and_fetch"""

    allowed: bool
    key: Optional[str] = None
    stream: Optional[AsyncIterator[bytes]] = None
    content_type: Optional[str] = None
    content_length: Optional[int] = None
    reason: Optional[str] = None

    @property
    def filename(self) -> str:
        if not self.key:
            return "download"
        return self.key.rsplit("/", 1)[-1] or "download"


@dataclass(frozen=True)
class DetailRecord:
    """An application detail upload with its application's owners"""

    detail_id: str
    application_id: str
    applicant_id: str
    institution_id: str
    storage_key: Optional[str]


@dataclass(frozen=True)
class DocumentRecord:
    """An applicant profile document"""

    document_id: str
    applicant_id: str
    storage_key: Optional[str]
    active: bool = True


@dataclass(frozen=True)
class SnapshotRecord:
    """A profile snapshot with the application it was taken for"""

    snapshot_id: str
    application_id: str
    applicant_id: str
    institution_id: str
    document_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AttachmentRecord:
    """A message attachment and the thread it was sent in"""

    message_id: str
    box_id: str
    sender_id: str
    participants: Tuple[str, str]
    storage_key: Optional[str] = None


@dataclass
class SnapshotCandidates:
    """Institution-scoped candidate set for snapshot membership checks"""

    snapshots: List[SnapshotRecord] = field(default_factory=list)

    @property
    def document_ids(self) -> List[str]:
        ids = (document_id for snapshot in self.snapshots for document_id in snapshot.document_ids)
        return list(dict.fromkeys(ids))

    @property
    def applicant_ids(self) -> List[str]:
        return sorted({snapshot.applicant_id for snapshot in self.snapshots})
