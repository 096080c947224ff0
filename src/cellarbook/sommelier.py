"""
AI sommelier: label photo analysis and collection chat.

Both features go through one OpenAI call path with:
- local rate limiting before every request
- retry with exponential backoff on transient API errors
- input sanitization for chat messages
- response caching for label analysis (keyed by image hash)
"""

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from openai import OpenAI, RateLimitError, APIError
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from cellarbook.config import (
    CHAT_MAX_TOKENS,
    LABEL_MAX_TOKENS,
    MAX_CHAT_MESSAGE_LENGTH,
    MAX_IMAGE_SIZE_MB,
    OPENAI_CHAT_MODEL,
    OPENAI_CHAT_TEMPERATURE,
    OPENAI_SEED,
    OPENAI_TEMPERATURE,
    OPENAI_VISION_MODEL,
    REQUESTS_PER_HOUR,
    REQUESTS_PER_MINUTE,
    get_setting,
)
from cellarbook.constants import (
    FilePaths,
    LABEL_ACIDITY_LEVELS,
    LABEL_BODY_LEVELS,
    LABEL_TANNIN_LEVELS,
    LABEL_WINE_TYPES,
)
from cellarbook.error_handling import (
    ConfigurationError,
    DataValidationError,
    LLMError,
    handle_llm_error,
)
from cellarbook.images import parse_data_url
from cellarbook.rate_limiter import RateLimiter
from cellarbook.schema import ChatReply, LabelExtraction, Wine, WineReference
from cellarbook.utils import LLMCache, sanitize_text_input, validate_image_upload

logger = logging.getLogger(__name__)

NO_REPLY_FALLBACK = "I apologize, but I was unable to generate a response."

USER_ADDED_SECTION = "--- USER-ADDED WINES ---"

_WINE_REFERENCE = re.compile(r'\[\[([^\]|]+)\|([^\]]+)\]\]')


# =======================
# PROMPTS
# =======================

LABEL_PROMPT = f"""You are an expert sommelier analyzing a wine label image. Extract ALL visible information and use your wine expertise to infer additional details based on the wine type, region, and grape varieties.

Return a JSON object with these fields (use empty string only if you truly cannot determine or infer the value):

- producer: winery/producer name
- name: wine name (not including producer)
- vintage: year as string, e.g. '2020'
- country: country of origin
- region: wine region (e.g., Napa Valley, Barolo, Champagne)
- appellation: official appellation/DOC/DOCG/AOC/AVA if visible or inferrable
- grapeVarieties: grape varieties, comma separated (infer from name/region if not explicit, e.g., Barolo = Nebbiolo)
- blendPercentage: blend percentages if visible (e.g., '80% Cabernet, 20% Merlot')
- wineType: one of: {', '.join(LABEL_WINE_TYPES)}
- color: descriptive color (e.g., 'Deep ruby with garnet rim')
- alcohol: alcohol percentage as number string, e.g. '14'
- bottleSize: bottle size if visible (e.g., '750ml', '1.5L')
- body: one of: {', '.join(LABEL_BODY_LEVELS)}
- tanninLevel: one of: {', '.join(LABEL_TANNIN_LEVELS)}
- acidityLevel: one of: {', '.join(LABEL_ACIDITY_LEVELS)}
- oakTreatment: oak aging details (e.g., '18 months French oak', 'Unoaked')
- agingPotential: e.g. 'Drink now', '5-10 years', '10-20 years'
- drinkWindowStart: earliest year to drink (4-digit year)
- drinkWindowEnd: latest year for optimal drinking (4-digit year)
- tastingNotes: palate notes, extracted or typical for the style
- aromaNotes: nose/aroma notes, extracted or typical for the style
- foodPairings: food pairing suggestions
- notes: awards, special designations ('Riserva', 'Grand Cru'), vineyard notes

Guidelines for inference:
- For classic wines (Barolo, Burgundy, Champagne, etc.), use your knowledge to fill in typical characteristics
- Drink window: light whites 1-3 years from vintage, full reds can be 10-25+ years
- Be specific with tasting notes, using professional wine descriptors
- For body/tannin/acidity, consider the grape variety and region climate

Only return valid JSON, no other text."""


CHAT_SYSTEM_TEMPLATE = """You are a knowledgeable wine sommelier assistant helping a collector explore their personal wine collection. You have deep expertise in wine regions, grape varieties, food pairings, and optimal drinking windows.

Here is the user's current wine collection ({total} wines). Each wine has an ID shown in brackets:

{context}

IMPORTANT: When you mention a specific wine from the collection, format it as a clickable link using this exact format: [[Display Name|ID]]
For example, if a wine is listed as "[ID:178] Castello Banfi Brunello di Montalcino (2018)...", format it as: [[Castello Banfi Brunello di Montalcino 2018|178]]

The display name should be the producer and wine name (optionally with vintage). The ID is the value from the [ID:xxx] prefix in the wine list above; use EXACTLY that value.

Based on this collection, answer the user's questions helpfully and specifically. When making recommendations:
- Reference specific wines from their collection using the [[Name|id]] format
- Consider the wine type, grape varieties, region, and tasting notes
- Suggest appropriate food pairings based on the wine characteristics
- Note drinking windows and whether wines are ready to drink or should be cellared
- If a question is not about wine, politely redirect to wine-related topics

Be conversational, enthusiastic about wine, and provide practical advice."""


# =======================
# CONTEXT AND PARSING HELPERS
# =======================

def format_wine_for_ai(wine: Wine) -> str:
    """One context line: '[ID:x] Producer Name (vintage) - type from country, region ...'."""
    line = (
        f"[ID:{wine.id}] {wine.producer} {wine.name} ({wine.vintage or 'NV'}) - "
        f"{wine.wine_type} from {wine.country}, {wine.region}"
    )
    if wine.grape_varieties:
        line += f" - {wine.grape_varieties}"
    if wine.food_pairings:
        line += f" | Pairs with: {wine.food_pairings}"
    if wine.drink_window_start and wine.drink_window_end:
        line += f" | Drink: {wine.drink_window_start}-{wine.drink_window_end}"
    return line


def format_wines_for_ai(wines: Iterable[Wine]) -> str:
    return "\n".join(format_wine_for_ai(wine) for wine in wines)


def build_collection_context(wines: Sequence[Wine]) -> str:
    """Catalog lines first, then user-added wines under their own heading."""
    catalog = [wine for wine in wines if not wine.is_user_added]
    added = [wine for wine in wines if wine.is_user_added]

    context = format_wines_for_ai(catalog)
    if added:
        context = f"{context}\n\n{USER_ADDED_SECTION}\n{format_wines_for_ai(added)}"
    return context


def parse_wine_references(text: str) -> List[WineReference]:
    """[[Display|id]] citations in order of first appearance, one per id."""
    references: List[WineReference] = []
    seen = set()
    for match in _WINE_REFERENCE.finditer(text or ""):
        display_name, wine_id = match.group(1), match.group(2)
        if wine_id in seen:
            continue
        seen.add(wine_id)
        references.append(WineReference(id=wine_id, display_name=display_name))
    return references


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` markdown fence if present."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


# =======================
# SOMMELIER
# =======================

class Sommelier:
    """
    OpenAI-backed label reader and collection chat assistant.

    Usage:
        sommelier = Sommelier()
        extraction = sommelier.analyze_label(data_url)
        reply = sommelier.chat("What should I open tonight?", wines)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[OpenAI] = None,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[LLMCache] = None
    ):
        """
        Initialize the sommelier.

        Args:
            api_key: OpenAI key (defaults to OPENAI_API_KEY setting)
            client: Preconfigured OpenAI client
            rate_limiter: Request limiter (defaults to config limits)
            cache: Label analysis cache (defaults to .cache/llm)

        Raises:
            ConfigurationError: If no client is given and no API key is set
        """
        if client is None:
            api_key = api_key or get_setting("OPENAI_API_KEY")
            if not api_key:
                raise ConfigurationError(
                    "AI features are not configured. Add OPENAI_API_KEY to secrets or environment."
                )
            client = OpenAI(api_key=api_key)

        self.client = client
        self.rate_limiter = rate_limiter or RateLimiter(
            requests_per_minute=REQUESTS_PER_MINUTE,
            requests_per_hour=REQUESTS_PER_HOUR
        )
        self.cache = cache if cache is not None else LLMCache(Path(FilePaths.LLM_CACHE_DIR))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((RateLimitError, APIError)),
        reraise=True
    )
    def _call_openai_with_retry(
        self,
        messages: list,
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool = False
    ) -> str:
        """
        Call OpenAI API with automatic retry on transient errors.

        Returns:
            Raw message content ("" when the model returned none)

        Raises:
            RateLimitExceeded: If the local limiter refuses the call
            OpenAIError: If all retries fail
        """
        self.rate_limiter.check_and_increment()

        kwargs = {
            'model': model,
            'messages': messages,
            'temperature': temperature,
            'max_tokens': max_tokens,
            'seed': OPENAI_SEED,
        }
        if json_mode:
            kwargs['response_format'] = {"type": "json_object"}

        try:
            logger.debug(f"Calling OpenAI API ({model})...")
            completion = self.client.chat.completions.create(**kwargs)
        except RateLimitError as e:
            logger.warning(f"Rate limit hit, retrying... ({e})")
            raise
        except APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise

        if getattr(completion, 'usage', None) is not None:
            logger.debug(f"OpenAI usage: {completion.usage.total_tokens} tokens")

        return completion.choices[0].message.content or ""

    def analyze_label(self, image_data_url: str) -> LabelExtraction:
        """
        Read a wine label photo into prefilled wine fields.

        Args:
            image_data_url: 'data:<mime>;base64,<payload>'

        Returns:
            LabelExtraction (fields the model could not determine are "")

        Raises:
            DataValidationError: If the payload is not a supported image
            LLMError: If the API call fails or the reply is not valid JSON
        """
        if not image_data_url:
            raise DataValidationError("Image data is required")

        mime_type, raw = parse_data_url(image_data_url)
        if not mime_type.startswith("image/"):
            raise DataValidationError(f"Unsupported upload type: {mime_type}")
        if not validate_image_upload(raw, max_size_mb=MAX_IMAGE_SIZE_MB):
            raise DataValidationError("Image is too large or not a JPEG/PNG/GIF/WebP file")

        cache_key = f"label_{hashlib.sha256(raw).hexdigest()}"
        cached = self.cache.get(cache_key, OPENAI_VISION_MODEL)
        if cached:
            logger.info("Using cached label analysis")
            return LabelExtraction.model_validate(cached)

        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": LABEL_PROMPT},
                    {"type": "image_url", "image_url": {"url": image_data_url}},
                ],
            }
        ]

        try:
            content = self._call_openai_with_retry(
                messages,
                model=OPENAI_VISION_MODEL,
                temperature=OPENAI_TEMPERATURE,
                max_tokens=LABEL_MAX_TOKENS,
                json_mode=True
            )
            data = json.loads(strip_code_fences(content))
            if not isinstance(data, dict):
                raise LLMError("Label analysis did not return a JSON object")
            extraction = LabelExtraction.model_validate(data)
        except LLMError:
            raise
        except (json.JSONDecodeError, ValidationError, RateLimitError, APIError) as e:
            raise handle_llm_error(e, "label analysis") from e

        self.cache.set(cache_key, OPENAI_VISION_MODEL, data)
        logger.info(f"Label analyzed: {extraction.producer} {extraction.name} ({extraction.vintage or 'NV'})")
        return extraction

    def chat(
        self,
        message: str,
        wines: Sequence[Wine],
        history: Optional[List[Dict[str, str]]] = None
    ) -> ChatReply:
        """
        Answer a question about the collection.

        Args:
            message: User question
            wines: Collection given to the model as context
            history: Earlier turns as {"role", "content"} dicts

        Returns:
            ChatReply with the text and the wines it cites

        Raises:
            DataValidationError: If the message is blank after sanitizing
            LLMError: If the API call fails
        """
        message = sanitize_text_input(message or "", max_length=MAX_CHAT_MESSAGE_LENGTH)
        if not message:
            raise DataValidationError("Message is required")

        system_prompt = CHAT_SYSTEM_TEMPLATE.format(
            total=len(wines),
            context=build_collection_context(wines),
        )
        messages = [{"role": "system", "content": system_prompt}]
        for turn in history or []:
            if turn.get("role") in ("user", "assistant") and turn.get("content"):
                messages.append({"role": turn["role"], "content": turn["content"]})
        messages.append({"role": "user", "content": message})

        try:
            content = self._call_openai_with_retry(
                messages,
                model=OPENAI_CHAT_MODEL,
                temperature=OPENAI_CHAT_TEMPERATURE,
                max_tokens=CHAT_MAX_TOKENS
            )
        except (RateLimitError, APIError) as e:
            raise handle_llm_error(e, "chat") from e

        reply = content.strip() or NO_REPLY_FALLBACK
        references = parse_wine_references(reply)
        logger.info(f"Chat reply with {len(references)} wine references")
        return ChatReply(reply=reply, wine_references=references)
