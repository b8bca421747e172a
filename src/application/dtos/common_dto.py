"""Common DTOs for API responses and error handling."""
from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Health status", examples=["healthy"])


class RootResponse(BaseModel):
    """Root endpoint response model."""
    status: str = Field(..., description="API status", examples=["ok"])
    service: str = Field(..., description="Service name", examples=["image-pipeline"])
    version: str = Field(..., description="API version", examples=["0.1.0"])


class ImageValidationErrorDetail(BaseModel):
    """Body of a rejected upload: every violated constraint at once."""
    message: str = Field(..., description="Summary of the rejection", examples=["Invalid image file"])
    errors: list[str] = Field(..., description="Each violated size/type constraint")


class ImageValidationErrorResponse(BaseModel):
    detail: ImageValidationErrorDetail
