# API v1 routes
from fastapi import APIRouter

from edumatch.api.v1 import applicant_documents, files

router = APIRouter()

router.include_router(files.router, prefix="/files", tags=["files"])
router.include_router(applicant_documents.router, prefix="/applicant/documents", tags=["applicant-documents"])
