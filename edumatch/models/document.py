"""
Applicant Document Pydantic Models
Response schemas for applicant profile document endpoints
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from edumatch.db.models import ApplicantDocument as ApplicantDocumentSQLModel


class ApplicantDocumentResponse(BaseModel):
    """Applicant document response schema"""
    document_id: str
    name: Optional[str]
    document_type: Optional[str]
    url: str
    created_at: Optional[datetime]

    @classmethod
    def from_db_model(cls, doc: ApplicantDocumentSQLModel) -> "ApplicantDocumentResponse":
        """Create ApplicantDocumentResponse from database model"""
        return cls(
            document_id=doc.document_id,
            name=doc.name,
            document_type=doc.document_type,
            url=doc.url,
            created_at=doc.created_at,
        )


class ApplicantDocumentListResponse(BaseModel):
    """Active documents on the applicant's profile"""
    total: int = Field(..., description="Number of active documents")
    results: List[ApplicantDocumentResponse]
