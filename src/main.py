from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from src.application.dtos.common_dto import HealthResponse, RootResponse
from src.infrastructure.api.middlewares import add_default_middlewares
from src.infrastructure.api.routes.image_routes import router as image_router


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Storefront Image Pipeline",
        version="0.1.0",
        description="""
        ## Storefront Image Pipeline API

        Stores product photos and store logos in Supabase Storage as an optimized
        pair of JPEG derivatives: a thumbnail (max 400x400) and a full-size image
        (max 1200x1200), both keeping the original aspect ratio.

        ### Features
        - **Validation**: type and size limits per image kind (product or logo)
        - **Optimization**: Lanczos resampling and JPEG re-encoding with Pillow
        - **Fallbacks**: original file upload, then inline data URI, when
          processing or storage fails
        - **Cleanup**: best-effort deletion of replaced or removed images

        ### Error Responses
        - **400 Bad Request**: The image violates type/size limits (all violations listed)
        - **413 Payload Too Large**: The image exceeds the size limit
        - **422 Unprocessable Entity**: Validation error in request body
        """,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )
    add_default_middlewares(app)

    @app.get(
        "/",
        response_model=RootResponse,
        summary="API Root",
        description="Get basic information about the image pipeline API",
    )
    def root():
        """Get API root information."""
        return {"status": "ok", "service": "image-pipeline", "version": app.version}

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health Check",
        description="Check if the API service is running and healthy",
    )
    def health():
        """Check API health status."""
        return {"status": "healthy"}

    app.include_router(image_router)
    return app


app = create_app()
