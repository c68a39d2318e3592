"""
Access Repository
Relational lookups used by the relationship resolver
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from edumatch.core.exceptions import UpstreamFailureException
from edumatch.core.logging import get_logger
from edumatch.db.models import (
    ApplicantDocument,
    Application,
    ApplicationDetail,
    ApplicationProfileSnapshot,
    Box,
    Message,
    Post,
    User,
    parse_document_ids,
)
from edumatch.services.access.models import (
    AttachmentRecord,
    DetailRecord,
    DocumentRecord,
    SnapshotRecord,
)

logger = get_logger(__name__)


class AccessRepository(ABC):
    """
    Read-only queries over applications, snapshots, documents and threads

    Every ``key`` argument is a canonical storage key.
    """

    @abstractmethod
    async def find_applicant_application_details(
        self, applicant_id: str, key: str
    ) -> List[DetailRecord]:
        """Details with this key on applications owned by the applicant"""

    @abstractmethod
    async def find_applicant_documents(self, applicant_id: str, key: str) -> List[DocumentRecord]:
        """The applicant's profile documents with this key, active or not"""

    @abstractmethod
    async def find_applicant_snapshots(self, applicant_id: str) -> List[SnapshotRecord]:
        """Snapshots of the applicant's own applications"""

    @abstractmethod
    async def find_institution_application_details(
        self, institution_id: str, key: str
    ) -> List[DetailRecord]:
        """Details with this key on applications to the institution's posts"""

    @abstractmethod
    async def find_application_details_by_key(self, key: str) -> List[DetailRecord]:
        """Details with this key on any application"""

    @abstractmethod
    async def find_institution_snapshots(self, institution_id: str) -> List[SnapshotRecord]:
        """Snapshots of applications to the institution's posts only"""

    @abstractmethod
    async def find_snapshot_documents(
        self,
        applicant_ids: Sequence[str],
        document_ids: Sequence[str],
        key: str,
    ) -> List[DocumentRecord]:
        """Documents with this key among the given applicants and document ids"""

    @abstractmethod
    async def find_message_attachments(self, key: str) -> List[AttachmentRecord]:
        """Messages carrying this key as an attachment"""

    @abstractmethod
    async def get_user_role(self, user_id: str) -> Optional[str]:
        """Raw role string for a user id"""


class SqlAccessRepository(AccessRepository):
    """
    SQLAlchemy implementation

    Each query opens its own session so independent lookups can run
    concurrently.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def _fetch(self, statement, operation: str) -> list:
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return list(result.all())
        except SQLAlchemyError as e:
            logger.error(f"Access lookup '{operation}' failed: {e}")
            raise UpstreamFailureException(
                message="Access lookup failed",
                source="database",
                details={"operation": operation},
            )

    @staticmethod
    def _detail_query():
        return (
            select(
                ApplicationDetail.detail_id,
                ApplicationDetail.application_id,
                Application.applicant_id,
                Post.institution_id,
                ApplicationDetail.storage_key,
            )
            .join(Application, ApplicationDetail.application_id == Application.application_id)
            .join(Post, Application.post_id == Post.post_id)
        )

    @staticmethod
    def _snapshot_query():
        return (
            select(
                ApplicationProfileSnapshot.snapshot_id,
                ApplicationProfileSnapshot.application_id,
                Application.applicant_id,
                Post.institution_id,
                ApplicationProfileSnapshot.document_ids,
            )
            .join(Application, ApplicationProfileSnapshot.application_id == Application.application_id)
            .join(Post, Application.post_id == Post.post_id)
        )

    @staticmethod
    def _to_details(rows) -> List[DetailRecord]:
        return [
            DetailRecord(
                detail_id=row.detail_id,
                application_id=row.application_id,
                applicant_id=row.applicant_id,
                institution_id=row.institution_id,
                storage_key=row.storage_key,
            )
            for row in rows
        ]

    @staticmethod
    def _to_snapshots(rows) -> List[SnapshotRecord]:
        return [
            SnapshotRecord(
                snapshot_id=row.snapshot_id,
                application_id=row.application_id,
                applicant_id=row.applicant_id,
                institution_id=row.institution_id,
                document_ids=tuple(parse_document_ids(row.document_ids)),
            )
            for row in rows
        ]

    @staticmethod
    def _to_documents(rows) -> List[DocumentRecord]:
        return [
            DocumentRecord(
                document_id=row.document_id,
                applicant_id=row.applicant_id,
                storage_key=row.storage_key,
                active=bool(row.status),
            )
            for row in rows
        ]

    async def find_applicant_application_details(
        self, applicant_id: str, key: str
    ) -> List[DetailRecord]:
        statement = self._detail_query().where(
            Application.applicant_id == applicant_id,
            ApplicationDetail.storage_key == key,
        )
        return self._to_details(await self._fetch(statement, "applicant_application_details"))

    async def find_applicant_documents(self, applicant_id: str, key: str) -> List[DocumentRecord]:
        statement = select(
            ApplicantDocument.document_id,
            ApplicantDocument.applicant_id,
            ApplicantDocument.storage_key,
            ApplicantDocument.status,
        ).where(
            ApplicantDocument.applicant_id == applicant_id,
            ApplicantDocument.storage_key == key,
        )
        return self._to_documents(await self._fetch(statement, "applicant_documents"))

    async def find_applicant_snapshots(self, applicant_id: str) -> List[SnapshotRecord]:
        statement = self._snapshot_query().where(Application.applicant_id == applicant_id)
        return self._to_snapshots(await self._fetch(statement, "applicant_snapshots"))

    async def find_institution_application_details(
        self, institution_id: str, key: str
    ) -> List[DetailRecord]:
        statement = self._detail_query().where(
            Post.institution_id == institution_id,
            ApplicationDetail.storage_key == key,
        )
        return self._to_details(await self._fetch(statement, "institution_application_details"))

    async def find_application_details_by_key(self, key: str) -> List[DetailRecord]:
        statement = self._detail_query().where(ApplicationDetail.storage_key == key)
        return self._to_details(await self._fetch(statement, "application_details_by_key"))

    async def find_institution_snapshots(self, institution_id: str) -> List[SnapshotRecord]:
        statement = self._snapshot_query().where(Post.institution_id == institution_id)
        return self._to_snapshots(await self._fetch(statement, "institution_snapshots"))

    async def find_snapshot_documents(
        self,
        applicant_ids: Sequence[str],
        document_ids: Sequence[str],
        key: str,
    ) -> List[DocumentRecord]:
        if not applicant_ids or not document_ids:
            return []
        # No status filter: snapshotted documents stay visible after soft delete
        statement = select(
            ApplicantDocument.document_id,
            ApplicantDocument.applicant_id,
            ApplicantDocument.storage_key,
            ApplicantDocument.status,
        ).where(
            ApplicantDocument.applicant_id.in_(list(applicant_ids)),
            ApplicantDocument.document_id.in_(list(document_ids)),
            ApplicantDocument.storage_key == key,
        )
        return self._to_documents(await self._fetch(statement, "snapshot_documents"))

    async def find_message_attachments(self, key: str) -> List[AttachmentRecord]:
        statement = (
            select(
                Message.message_id,
                Message.box_id,
                Message.sender_id,
                Message.storage_key,
                Box.user_one_id,
                Box.user_two_id,
            )
            .join(Box, Message.box_id == Box.box_id)
            .where(Message.storage_key == key)
        )
        rows = await self._fetch(statement, "message_attachments")
        return [
            AttachmentRecord(
                message_id=row.message_id,
                box_id=row.box_id,
                sender_id=row.sender_id,
                participants=(row.user_one_id, row.user_two_id),
                storage_key=row.storage_key,
            )
            for row in rows
        ]

    async def get_user_role(self, user_id: str) -> Optional[str]:
        rows = await self._fetch(select(User.role).where(User.id == user_id), "user_role")
        return rows[0].role if rows else None
