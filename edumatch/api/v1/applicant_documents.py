"""
Applicant Documents API Routes
Profile document listing and soft deletion
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edumatch.api.dependencies import get_current_applicant
from edumatch.core.exceptions import NotFoundException
from edumatch.core.identity import Actor
from edumatch.core.logging import get_logger
from edumatch.db.models import ApplicantDocument as ApplicantDocumentModel
from edumatch.db.session import get_db_session
from edumatch.models.document import ApplicantDocumentListResponse, ApplicantDocumentResponse

logger = get_logger(__name__)
router = APIRouter()


@router.get("", response_model=ApplicantDocumentListResponse)
async def list_applicant_documents(
    db: AsyncSession = Depends(get_db_session),
    actor: Actor = Depends(get_current_applicant),
):
    """List the active documents on the current applicant's profile"""
    result = await db.execute(
        select(ApplicantDocumentModel)
        .where(
            ApplicantDocumentModel.applicant_id == actor.applicant_id,
            ApplicantDocumentModel.status.is_(True),
        )
        .order_by(ApplicantDocumentModel.created_at.desc())
    )
    documents = result.scalars().all()

    return ApplicantDocumentListResponse(
        total=len(documents),
        results=[ApplicantDocumentResponse.from_db_model(doc) for doc in documents],
    )


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_applicant_document(
    document_id: str,
    db: AsyncSession = Depends(get_db_session),
    actor: Actor = Depends(get_current_applicant),
):
    """
    Delete a profile document (soft delete)

    The row and the stored object are kept: profile snapshots taken for
    earlier applications still reference the document, and receiving
    institutions must be able to read it.
    """
    result = await db.execute(
        select(ApplicantDocumentModel).where(
            ApplicantDocumentModel.document_id == document_id,
            ApplicantDocumentModel.applicant_id == actor.applicant_id,
            ApplicantDocumentModel.status.is_(True),
        )
    )
    document = result.scalar_one_or_none()

    if not document:
        raise NotFoundException("Document")

    document.status = False
    document.deleted_at = datetime.now(timezone.utc)
    await db.commit()

    logger.info(f"Applicant document soft-deleted: {document_id} by applicant {actor.applicant_id}")

    return None
