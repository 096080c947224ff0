"""Supabase client construction from Streamlit secrets or the environment."""

import logging
from typing import Optional

from supabase import Client, create_client

from cellarbook.config import get_setting
from cellarbook.error_handling import ConfigurationError

logger = logging.getLogger(__name__)


def _normalize_secret_string(raw_value: object, secret_name: str) -> str:
    """Strip whitespace and accidental copied quotes from a secret value."""
    if raw_value is None:
        raise ConfigurationError(f"{secret_name} is missing")

    value = str(raw_value).strip()
    quote_pairs = [
        ('"', '"'),
        ("'", "'"),
        ("“", "”"),
        ("‘", "’"),
    ]
    for left_quote, right_quote in quote_pairs:
        if value.startswith(left_quote) and value.endswith(right_quote) and len(value) >= 2:
            value = value[1:-1].strip()
            break

    if not value:
        raise ConfigurationError(f"{secret_name} is empty")
    return value


def is_supabase_configured() -> bool:
    """True when both SUPABASE_URL and SUPABASE_KEY are set."""
    return bool(get_setting("SUPABASE_URL")) and bool(get_setting("SUPABASE_KEY"))


def get_supabase_client() -> Client:
    """
    Build a Supabase client.

    Raises:
        ConfigurationError: If URL or key is missing
    """
    supabase_url = _normalize_secret_string(get_setting("SUPABASE_URL"), "SUPABASE_URL")
    supabase_key = _normalize_secret_string(get_setting("SUPABASE_KEY"), "SUPABASE_KEY")
    logger.info(f"Connecting to Supabase at {supabase_url}")
    return create_client(supabase_url, supabase_key)


def get_optional_supabase_client() -> Optional[Client]:
    """Client when configured, otherwise None (local file mode)."""
    if not is_supabase_configured():
        logger.info("Supabase not configured, using local catalog files")
        return None
    return get_supabase_client()
