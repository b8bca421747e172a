from __future__ import annotations

import logging
import os

from supabase import Client, create_client

logger = logging.getLogger(__name__)


def create_supabase_client() -> Client | None:
    """Build a Supabase client from the environment.

    Bucket creation needs the service role key; the anon key is enough for
    uploads when the bucket policies allow it. Returns None when
    SUPABASE_DISABLED=1 or credentials are missing, which puts storage in
    local mode.
    """
    disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")
    if disabled:
        return None
    if not url or not key:
        logger.warning("SUPABASE_URL or key not configured, using local storage")
        return None
    return create_client(url, key)
