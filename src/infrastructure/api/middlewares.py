from __future__ import annotations

import os

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware


def add_default_middlewares(app: FastAPI) -> None:
    # The storefront and admin console call these endpoints from the browser.
    # CORS_ORIGINS (comma separated) wins over the per-environment defaults.
    env = os.getenv("ENV", "development")
    configured = os.getenv("CORS_ORIGINS", "")

    if configured.strip():
        allowed_origins = [o.strip() for o in configured.split(",") if o.strip()]
    elif env in ("development", "staging"):
        allowed_origins = [
            "http://localhost:3000",
            "http://localhost:5173",  # Vite default
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]
    else:
        allowed_origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials="*" not in allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
