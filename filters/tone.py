"""
filters/tone.py

Deterministic tone adjustment applied by the output filter to each outbound chunk.

Per language the adjuster knows:
- casual replacements (regular expression -> replacement), e.g. "para" -> "pra"
- plain-language substitutes for technical terms, used for users whose
  knowledge level is NO_KNOWLEDGE or BEGINNER
- a greeting that prefixes the first chunk of a GREETING message

Languages without a table are returned unchanged.
"""

import logging
import re
from typing import Dict, Optional

from shared.models import KnowledgeLevel, MessageType

logger = logging.getLogger(__name__)

# Knowledge levels whose replies get technical terms swapped for plain language.
SIMPLIFIED_LEVELS = {KnowledgeLevel.NO_KNOWLEDGE, KnowledgeLevel.BEGINNER}

_GREETING_START = re.compile(r"^\s*¡?(?:oi|olá|ola|hey|hi|hello|e aí|opa|hola|buenas)\b", re.IGNORECASE)

TONE_CONFIG: Dict[str, Dict[str, object]] = {
    "pt": {
        "greeting": "Oi!",
        "casual_replacements": {
            r"\bvocê está\b": "você tá",
            r"\bestou\b": "tô",
            r"\bestá\b": "tá",
            r"\bestão\b": "tão",
            r"\bpara\b": "pra",
            r"\bem relação a\b": "sobre",
            r"\b(?:isto|isso) significa\b": "quer dizer",
            r"\b(?:realizar|efetuar)\b": "fazer",
        },
        "technical_terms": {
            "investimento de renda fixa": "investimento mais seguro",
            "diversificação": "distribuição do dinheiro",
            "volatilidade": "variação",
            "liquidez": "disponibilidade do dinheiro",
            "rentabilidade": "ganho",
        },
    },
    "en": {
        "greeting": "Hi!",
        "casual_replacements": {
            r"\bdo not\b": "don't",
            r"\bcannot\b": "can't",
            r"\bit is\b": "it's",
            r"\byou are\b": "you're",
            r"\bin order to\b": "to",
            r"\bwith regard to\b": "about",
        },
        "technical_terms": {
            "fixed-income investment": "safer investment",
            "diversification": "spreading your money around",
            "volatility": "ups and downs",
            "liquidity": "how quickly you can get your money",
            "rate of return": "gain",
        },
    },
    "es": {
        "greeting": "¡Hola!",
        "casual_replacements": {
            r"\bpor lo tanto\b": "así que",
            r"\ben relación a\b": "sobre",
            r"\b(?:realizar|efectuar)\b": "hacer",
        },
        "technical_terms": {
            "diversificación": "repartir el dinero",
            "volatilidad": "subidas y bajadas",
            "liquidez": "disponibilidad del dinero",
            "rentabilidad": "ganancia",
        },
    },
}


def _match_case(original: str, replacement: str) -> str:
    if original[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def starts_with_greeting(content: str) -> bool:
    return bool(_GREETING_START.match(content))


class ToneAdjuster:
    """
    Make outbound chunks sound like a friendly chat message.

    Args:
        config (Optional[Dict]): Per-language tables; defaults to ``TONE_CONFIG``.
    """

    def __init__(self, config: Optional[Dict[str, Dict[str, object]]] = None):
        self.config = config or TONE_CONFIG

    def adjust(self, content: str, language_code: str, knowledge_level: KnowledgeLevel,
               message_type: MessageType = MessageType.EXPLANATION, is_first: bool = False) -> str:
        """
        Apply the tone rules of ``language_code`` to ``content``.

        Args:
            content (str): Chunk text.
            language_code (str): Conversation language, e.g. ``pt-BR``; only the base code is used.
            knowledge_level (KnowledgeLevel): The user's knowledge level.
            message_type (MessageType): Type of the chunk; greetings may get a prefix.
            is_first (bool): Whether this is the first chunk of the reply.

        Returns:
            str: The adjusted chunk. Any failure returns ``content`` unchanged.
        """
        if not content:
            return content
        base = (language_code or "").split("-")[0].lower()
        table = self.config.get(base)
        if not table:
            return content

        try:
            adjusted = content
            if knowledge_level in SIMPLIFIED_LEVELS:
                for term, simple in table.get("technical_terms", {}).items():
                    adjusted = re.sub(
                        re.escape(term), lambda m, s=simple: _match_case(m.group(0), s), adjusted, flags=re.IGNORECASE
                    )
            for pattern, casual in table.get("casual_replacements", {}).items():
                adjusted = re.sub(pattern, lambda m, c=casual: _match_case(m.group(0), c), adjusted, flags=re.IGNORECASE)
            if message_type == MessageType.GREETING and is_first and not starts_with_greeting(adjusted):
                adjusted = f"{table['greeting']} {adjusted}"
            return adjusted
        except (re.error, KeyError, TypeError) as e:
            logger.error(f"[ToneAdjuster] Tone adjustment failed for {language_code}: {e}")
            return content
