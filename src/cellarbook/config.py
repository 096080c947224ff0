"""
Cellarbook Configuration
Centralized settings for the application
"""

import logging
import os
from typing import Optional

import streamlit as st
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env for local development
load_dotenv()

# OpenAI Model Configuration
OPENAI_CHAT_MODEL = "gpt-4o-mini"  # Collection chat
OPENAI_VISION_MODEL = "gpt-4o"  # Label analysis (needs image input)
OPENAI_TEMPERATURE = 0.0  # Deterministic label extraction
OPENAI_CHAT_TEMPERATURE = 0.7  # Conversational replies
OPENAI_SEED = 42  # Fixed seed for reproducibility
CHAT_MAX_TOKENS = 1024
LABEL_MAX_TOKENS = 2048

# Rate limiting for AI calls
REQUESTS_PER_MINUTE = 20
REQUESTS_PER_HOUR = 300

# Input limits
MAX_CHAT_MESSAGE_LENGTH = 2000
MAX_IMAGE_SIZE_MB = 10


def get_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read a setting from Streamlit secrets, falling back to the environment."""
    try:
        value = st.secrets[name]
    except (FileNotFoundError, KeyError, AttributeError):
        value = None
    except Exception as e:
        # Newer Streamlit raises its own error type when no secrets.toml exists
        logger.debug(f"Streamlit secrets unavailable for {name}: {e}")
        value = None

    if value is None:
        value = os.getenv(name, default)
    return value
