"""
Tests for `services/language_service.py` – cached language detection that never raises.
"""

import os

os.environ.setdefault("NEBIUS_API_KEY", "test-key")

from conftest import FakeCompletionService
from services.language_service import FALLBACK_DETECTION, LanguageDetector, language_name
from shared.exceptions import UpstreamServiceError


def test_detection_is_normalized_and_cached():
    completion = FakeCompletionService(structured={
        "language_detection": {"code": "PT", "name": "portuguese", "confidence": 1.7},
    })
    detector = LanguageDetector(completion, prompt_template="Detect: {text}")

    first = detector.detect("Olá, tudo bem?")
    second = detector.detect("  OLÁ, TUDO BEM?")

    assert first.code == "pt"
    assert first.name == "Portuguese"
    assert first.confidence == 1.0
    assert second == first
    assert len(completion.calls_for("language_detection")) == 1


def test_failure_defaults_to_english():
    completion = FakeCompletionService(structured={"language_detection": UpstreamServiceError("circuit open")})
    detector = LanguageDetector(completion, prompt_template="Detect: {text}")

    assert detector.detect("Hallo zusammen") == FALLBACK_DETECTION
    assert FALLBACK_DETECTION.confidence == 0.5


def test_empty_text_skips_the_service():
    completion = FakeCompletionService()
    detection = LanguageDetector(completion, prompt_template="Detect: {text}").detect("   ")

    assert detection.code == "en"
    assert completion.calls == []


def test_cache_is_bounded():
    completion = FakeCompletionService(structured={"language_detection": {"code": "en", "name": "English"}})
    detector = LanguageDetector(completion, cache_size=2, prompt_template="Detect: {text}")

    for text in ("one", "two", "three", "one"):
        detector.detect(text)

    assert len(completion.calls_for("language_detection")) == 4


def test_language_name():
    assert language_name("pt-BR") == "Portuguese"
    assert language_name("xx") == "XX"
