"""
Utility functions for Cellarbook.

Includes lenient number parsing, id generation, input sanitization,
image validation, LLM response caching, and logging setup.
"""

import hashlib
import json
import logging
import random
import re
import string
import time
from pathlib import Path
from typing import Any, Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# =======================
# PARSING AND IDS
# =======================

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')
_BASE36 = string.digits + string.ascii_lowercase


def parse_leading_int(value: Any) -> Optional[int]:
    """
    Parse the leading integer of a value, ignoring trailing text.

    "2018" -> 2018, "2018 (est.)" -> 2018, "4.5" -> 4, "NV" -> None.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _LEADING_INT.match(str(value))
    if not match:
        return None
    return int(match.group(1))


def int_or_default(value: Any, default: int) -> int:
    """Leading-integer parse where both failure and zero fall back to default."""
    return parse_leading_int(value) or default


def random_token(length: int = 9) -> str:
    """Random lowercase base36 token."""
    return ''.join(random.choice(_BASE36) for _ in range(length))


def timestamped_id(prefix: str) -> str:
    """Generate '<prefix><epoch-ms>-<token>' ids (e.g. 'user-1718000000000-k3j9x0a1b')."""
    return f"{prefix}{int(time.time() * 1000)}-{random_token()}"


# =======================
# INPUT SANITIZATION
# =======================

# Role markers and instruction-override phrases stripped from chat input
_PROMPT_INJECTION = re.compile(
    r'(?:ignore|disregard|forget)[\s.,:;]+(?:previous|all|above)'
    r'|(?:system|assistant)[\s.,:;]*:'
    r'|\[/?INST\]'
    r'|<\|(?:im_start|im_end|system)\|>'
    r'|(?:new|override)\s+instruction'
    r'|you\s+are\s+now'
    r'|reveal\s+your',
    re.IGNORECASE
)
_BLANK_LINE_RUN = re.compile(r'\n{3,}')


def sanitize_text_input(text: str, max_length: int = 5000) -> str:
    """
    Clean a chat message before it is placed in a prompt.

    Truncates to max_length, strips role markers and override phrases,
    keeps at most one blank line in a row and drops control characters.
    """
    if not text:
        return ""
    cleaned = _PROMPT_INJECTION.sub('', text[:max_length])
    cleaned = _BLANK_LINE_RUN.sub('\n\n', cleaned)
    cleaned = ''.join(ch for ch in cleaned if ch in '\n\t' or ch.isprintable())
    return cleaned.strip()


# =======================
# IMAGES
# =======================

_IMAGE_SIGNATURES = (
    (b'\xFF\xD8\xFF', 'image/jpeg'),
    (b'\x89PNG\r\n\x1a\n', 'image/png'),
    (b'GIF87a', 'image/gif'),
    (b'GIF89a', 'image/gif'),
)


def detect_image_type(data: bytes) -> Optional[str]:
    """MIME type from the file signature, or None for unsupported formats."""
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return 'image/webp'
    return next((mime for signature, mime in _IMAGE_SIGNATURES if data.startswith(signature)), None)


def validate_image_upload(data: bytes, max_size_mb: int = 10) -> bool:
    """True when the payload is a supported image no larger than max_size_mb."""
    if len(data) > max_size_mb * 1024 * 1024:
        logger.warning(f"Label image is {len(data) / 1048576:.1f}MB, limit is {max_size_mb}MB")
        return False
    if detect_image_type(data) is None:
        logger.warning("Label image has no JPEG/PNG/GIF/WebP signature")
        return False
    return True


# =======================
# LLM RESPONSE CACHING
# =======================

class LLMCache:
    """
    Model responses stored as JSON files, one per (key, model) pair.

    Entries older than ttl_hours count as missing and are removed on read.
    """

    def __init__(self, cache_dir: Optional[Path] = None, ttl_hours: int = 24):
        self.cache_dir = Path(cache_dir) if cache_dir is not None else Path.cwd() / '.cache' / 'llm'
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.ttl_seconds = ttl_hours * 3600

    def _path(self, key: str, model: str) -> Path:
        digest = hashlib.sha256(f"{model}\x00{key}".encode()).hexdigest()
        return self.cache_dir / f"{digest}.json"

    def get(self, key: str, model: str) -> Optional[Any]:
        """Cached response, or None when missing, expired or unreadable."""
        path = self._path(key, model)
        try:
            age = time.time() - path.stat().st_mtime
        except FileNotFoundError:
            return None

        if age > self.ttl_seconds:
            logger.debug(f"Cache entry {path.stem[:8]} expired")
            path.unlink()
            return None

        try:
            entry = json.loads(path.read_text(encoding='utf-8'))
            logger.info(f"Cache hit {path.stem[:8]} ({model})")
            return entry['response']
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Unreadable cache entry {path.stem[:8]}: {e}")
            return None

    def set(self, key: str, model: str, response: Any) -> None:
        path = self._path(key, model)
        entry = {'key': key[:200], 'model': model, 'response': response, 'stored_at': time.time()}
        try:
            path.write_text(json.dumps(entry), encoding='utf-8')
        except (OSError, TypeError) as e:
            logger.error(f"Could not write cache entry {path.stem[:8]}: {e}")

    def clear(self) -> int:
        """Remove every entry; returns how many were removed."""
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            path.unlink()
            removed += 1
        logger.info(f"Cleared {removed} cached responses")
        return removed
