"""
Language detection for inbound messages.

The detector asks the completion service for a ``LanguageDetection`` and keeps
a small LRU cache keyed by the first 100 lowercased characters of the text, so
that repeated greetings and short answers ("yes", "ok") do not cost a model
call each time. Detection never raises: on any failure the caller gets English
with a confidence of 0.5.
"""

import logging
import threading
from collections import OrderedDict
from typing import Optional

from config import CONFIG
from shared.models import LanguageDetection

logger = logging.getLogger(__name__)

CACHE_KEY_LENGTH = 100

LANGUAGE_NAMES = {
    "en": "English",
    "pt": "Portuguese",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "ja": "Japanese",
    "zh": "Chinese",
    "ru": "Russian",
    "ar": "Arabic",
    "nl": "Dutch",
    "pl": "Polish",
    "ro": "Romanian",
    "sv": "Swedish",
    "tr": "Turkish",
    "vi": "Vietnamese",
    "hu": "Hungarian",
}

DEFAULT_DETECTION = LanguageDetection(code="en", name="English", confidence=1.0)
FALLBACK_DETECTION = LanguageDetection(code="en", name="English", confidence=0.5)


def language_name(code: str) -> str:
    """English name for an ISO 639-1 code; unknown codes are returned upper-cased."""
    base = (code or "").split("-")[0].lower()
    return LANGUAGE_NAMES.get(base, (code or "").upper())


class LanguageDetector:
    """
    Completion-service-backed language classifier with an in-process cache.

    Args:
        completion_service: Object with ``complete_structured(messages, schema, model_key)``.
        cache_size (int): Maximum number of cached detections.
        prompt_template (Optional[str]): Prompt with a ``{text}`` placeholder.
    """

    def __init__(self, completion_service, cache_size: int = 500, prompt_template: Optional[str] = None):
        self.completion_service = completion_service
        self.cache_size = cache_size
        self.prompt_template = prompt_template or CONFIG['language_detection_message']
        self._cache: "OrderedDict[str, LanguageDetection]" = OrderedDict()
        self._lock = threading.Lock()

    def detect(self, text: str) -> LanguageDetection:
        if not text or not text.strip():
            return DEFAULT_DETECTION

        key = text.strip().lower()[:CACHE_KEY_LENGTH]
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                return cached

        try:
            detection = self.completion_service.complete_structured(
                [{"role": "user", "content": self.prompt_template.format(text=text[:500])}],
                LanguageDetection,
                "language_detection",
            )
        except Exception as e:
            logger.warning(f"[LanguageDetector] Detection failed, defaulting to English: {e}")
            return FALLBACK_DETECTION

        code = detection.code.strip().lower() or "en"
        detection = LanguageDetection(
            code=code,
            name=LANGUAGE_NAMES.get(code.split("-")[0], detection.name or code.upper()),
            confidence=max(0.0, min(1.0, detection.confidence)),
        )

        with self._lock:
            self._cache[key] = detection
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        logger.debug(f"[LanguageDetector] Detected {detection.code} ({detection.confidence:.2f})")
        return detection
