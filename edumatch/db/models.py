"""
SQLAlchemy Database Models
Users, applicant/institution profiles, applications, stored documents and
message threads
"""

import json
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from edumatch.core.locators import normalize_locator
from edumatch.db.base import Base, TimestampMixin, new_id


def parse_document_ids(value: Any) -> List[str]:
    """
    Read a snapshot's document id list

    Accepts a JSON list, a JSON-encoded list string, or a Postgres array
    literal such as ``{doc1,doc2}``. Non-string and empty entries are dropped.
    """
    if value is None:
        return []

    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = json.loads(text)
            except json.JSONDecodeError:
                return []
        else:
            text = text.strip("{}")
            return [part.strip().strip('"') for part in text.split(",") if part.strip().strip('"')]

    if isinstance(value, (list, tuple)):
        return [item for item in value if isinstance(item, str) and item]

    return []


def storage_key_for(value: Optional[str]) -> Optional[str]:
    """Canonical key stored next to a locator column"""
    return normalize_locator(value) if value else None


class User(TimestampMixin, Base):
    """User SQLAlchemy model"""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="applicant")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Applicant(TimestampMixin, Base):
    """Applicant profile"""

    __tablename__ = "applicants"

    applicant_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), unique=True, nullable=False, index=True
    )

    documents: Mapped[List["ApplicantDocument"]] = relationship(back_populates="applicant")
    applications: Mapped[List["Application"]] = relationship(back_populates="applicant")


class Institution(TimestampMixin, Base):
    """Institution profile"""

    __tablename__ = "institutions"

    institution_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), unique=True, nullable=False, index=True
    )
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    posts: Mapped[List["Post"]] = relationship(back_populates="institution")


class Post(TimestampMixin, Base):
    """Programme, scholarship or research position published by an institution"""

    __tablename__ = "posts"

    post_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    institution_id: Mapped[str] = mapped_column(
        ForeignKey("institutions.institution_id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(512), nullable=False)

    institution: Mapped[Institution] = relationship(back_populates="posts")
    applications: Mapped[List["Application"]] = relationship(back_populates="post")


class Application(TimestampMixin, Base):
    """An applicant's submission to a post"""

    __tablename__ = "applications"

    application_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    applicant_id: Mapped[str] = mapped_column(
        ForeignKey("applicants.applicant_id"), nullable=False, index=True
    )
    post_id: Mapped[str] = mapped_column(ForeignKey("posts.post_id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="submitted")

    applicant: Mapped[Applicant] = relationship(back_populates="applications")
    post: Mapped[Post] = relationship(back_populates="applications")
    details: Mapped[List["ApplicationDetail"]] = relationship(back_populates="application")
    snapshot: Mapped[Optional["ApplicationProfileSnapshot"]] = relationship(
        back_populates="application", uselist=False
    )


class ApplicationDetail(TimestampMixin, Base):
    """File uploaded as part of one application submission"""

    __tablename__ = "application_details"

    detail_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    application_id: Mapped[str] = mapped_column(
        ForeignKey("applications.application_id"), nullable=False, index=True
    )
    name: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    document_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    storage_key: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True, index=True)

    application: Mapped[Application] = relationship(back_populates="details")

    @validates("url")
    def _sync_storage_key(self, _key: str, value: str) -> str:
        self.storage_key = storage_key_for(value)
        return value


class ApplicantDocument(TimestampMixin, Base):
    """Document on an applicant's profile; soft-deleted via ``status``"""

    __tablename__ = "applicant_documents"

    document_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    applicant_id: Mapped[str] = mapped_column(
        ForeignKey("applicants.applicant_id"), nullable=False, index=True
    )
    name: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    document_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    storage_key: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True, index=True)
    status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    applicant: Mapped[Applicant] = relationship(back_populates="documents")

    @validates("url")
    def _sync_storage_key(self, _key: str, value: str) -> str:
        self.storage_key = storage_key_for(value)
        return value

    @property
    def active(self) -> bool:
        return bool(self.status)


class ApplicationProfileSnapshot(TimestampMixin, Base):
    """Frozen copy of the applicant's document id list at submission time"""

    __tablename__ = "application_profile_snapshots"

    snapshot_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    application_id: Mapped[str] = mapped_column(
        ForeignKey("applications.application_id"), unique=True, nullable=False, index=True
    )
    document_ids: Mapped[Any] = mapped_column(JSON, nullable=False, default=list)

    application: Mapped[Application] = relationship(back_populates="snapshot")

    @property
    def document_id_list(self) -> List[str]:
        return parse_document_ids(self.document_ids)


class Box(TimestampMixin, Base):
    """Message thread between two users"""

    __tablename__ = "boxes"

    box_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_one_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    user_two_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    messages: Mapped[List["Message"]] = relationship(back_populates="box")

    @property
    def participants(self) -> set:
        return {self.user_one_id, self.user_two_id}


class Message(TimestampMixin, Base):
    """Message in a thread, optionally carrying a file attachment"""

    __tablename__ = "messages"

    message_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    box_id: Mapped[str] = mapped_column(ForeignKey("boxes.box_id"), nullable=False, index=True)
    sender_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_name: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    storage_key: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True, index=True)

    box: Mapped[Box] = relationship(back_populates="messages")

    @validates("file_url")
    def _sync_storage_key(self, _key: str, value: Optional[str]) -> Optional[str]:
        self.storage_key = storage_key_for(value)
        return value
