"""
Common Pydantic Models
Shared schemas used across the application
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Error detail model"""
    code: str = Field(..., description="Error code")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: Optional[str] = Field(None, description="Error timestamp")


class ErrorResponse(BaseModel):
    """Standard error response"""
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Health status: healthy, degraded, or unhealthy")
    version: str = Field(..., description="Application version")
    timestamp: Optional[str] = Field(None, description="Response timestamp")
    services: Optional[Dict[str, str]] = Field(None, description="Service health status")
    cache: Optional[Dict[str, Any]] = Field(None, description="Decision cache statistics")
