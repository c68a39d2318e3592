"""
Conftest for access service unit tests
In-memory relationship data standing in for the relational store
"""

from typing import Dict, List, Optional, Sequence

import pytest

from edumatch.core.identity import Actor, Role
from edumatch.services.access.models import (
    AttachmentRecord,
    DetailRecord,
    DocumentRecord,
    SnapshotRecord,
)
from edumatch.services.access.repository import AccessRepository


class FakeAccessRepository(AccessRepository):
    """AccessRepository over plain lists, with call counting and fault injection"""

    def __init__(self):
        self.details: List[DetailRecord] = []
        self.documents: List[DocumentRecord] = []
        self.snapshots: List[SnapshotRecord] = []
        self.attachments: List[AttachmentRecord] = []
        self.user_roles: Dict[str, str] = {}
        self.failure: Optional[Exception] = None
        self.calls: List[str] = []

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.failure is not None:
            raise self.failure

    # Builders

    def add_detail(self, key, applicant_id, institution_id, application_id="app-x"):
        self.details.append(
            DetailRecord(
                detail_id=f"detail-{len(self.details)}",
                application_id=application_id,
                applicant_id=applicant_id,
                institution_id=institution_id,
                storage_key=key,
            )
        )

    def add_document(self, document_id, applicant_id, key, active=True):
        self.documents.append(
            DocumentRecord(
                document_id=document_id,
                applicant_id=applicant_id,
                storage_key=key,
                active=active,
            )
        )

    def soft_delete(self, document_id):
        self.documents = [
            DocumentRecord(d.document_id, d.applicant_id, d.storage_key, active=False)
            if d.document_id == document_id
            else d
            for d in self.documents
        ]

    def add_snapshot(self, application_id, applicant_id, institution_id, document_ids):
        self.snapshots.append(
            SnapshotRecord(
                snapshot_id=f"snap-{application_id}",
                application_id=application_id,
                applicant_id=applicant_id,
                institution_id=institution_id,
                document_ids=tuple(document_ids),
            )
        )

    def add_attachment(self, key, box_id, sender_id, participants):
        self.attachments.append(
            AttachmentRecord(
                message_id=f"msg-{len(self.attachments)}",
                box_id=box_id,
                sender_id=sender_id,
                participants=tuple(participants),
                storage_key=key,
            )
        )

    # AccessRepository

    async def find_applicant_application_details(self, applicant_id: str, key: str):
        self._record("find_applicant_application_details")
        return [d for d in self.details if d.applicant_id == applicant_id and d.storage_key == key]

    async def find_applicant_documents(self, applicant_id: str, key: str):
        self._record("find_applicant_documents")
        return [d for d in self.documents if d.applicant_id == applicant_id and d.storage_key == key]

    async def find_applicant_snapshots(self, applicant_id: str):
        self._record("find_applicant_snapshots")
        return [s for s in self.snapshots if s.applicant_id == applicant_id]

    async def find_institution_application_details(self, institution_id: str, key: str):
        self._record("find_institution_application_details")
        return [
            d for d in self.details if d.institution_id == institution_id and d.storage_key == key
        ]

    async def find_application_details_by_key(self, key: str):
        self._record("find_application_details_by_key")
        return [d for d in self.details if d.storage_key == key]

    async def find_institution_snapshots(self, institution_id: str):
        self._record("find_institution_snapshots")
        return [s for s in self.snapshots if s.institution_id == institution_id]

    async def find_snapshot_documents(
        self, applicant_ids: Sequence[str], document_ids: Sequence[str], key: str
    ):
        self._record("find_snapshot_documents")
        return [
            d
            for d in self.documents
            if d.applicant_id in applicant_ids
            and d.document_id in document_ids
            and d.storage_key == key
        ]

    async def find_message_attachments(self, key: str):
        self._record("find_message_attachments")
        return [a for a in self.attachments if a.storage_key == key]

    async def get_user_role(self, user_id: str):
        self._record("get_user_role")
        return self.user_roles.get(user_id)


@pytest.fixture
def repository():
    """Empty in-memory access repository"""
    return FakeAccessRepository()


@pytest.fixture
def applicant():
    return Actor(id="u-app1", role=Role.APPLICANT, applicant_id="app1")


@pytest.fixture
def institution():
    return Actor(id="u-inst1", role=Role.INSTITUTION, institution_id="inst1")


@pytest.fixture
def other_institution():
    return Actor(id="u-inst2", role=Role.INSTITUTION, institution_id="inst2")


@pytest.fixture
def admin():
    return Actor(id="u-admin", role=Role.ADMIN)


@pytest.fixture
def moderator():
    return Actor(id="u-mod", role=Role.MODERATOR)
