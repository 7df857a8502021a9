"""
shared/validators.py

Heuristics for recognizing registration field values in free text.

The router uses ``looks_like_name`` and ``looks_like_email`` to recognize a
bare field value during an active registration. The registration worker uses
the full set to validate and normalize each step's answer.
"""

import re
from datetime import date, datetime
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NAME_SPECIAL_CHARS = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?0-9]")
_COUNTRY_PATTERN = re.compile(r"^[^\W\d_]+(?:[ .\-]+[^\W\d_]+)*\.?$")
_PERSON_NAME_PATTERN = re.compile(r"^[^\W\d_]+(?:[ '’.\-]+[^\W\d_]+)*\.?$")

EXIT_PHRASES = (
    "exit",
    "quit",
    "cancel",
    "stop",
    "leave",
    "não quero",
    "nao quero",
    "not interested",
    "change topic",
    "something else",
    "different",
)
_EXIT_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(phrase) for phrase in EXIT_PHRASES) + r")\b",
    re.IGNORECASE,
)

_AFFIRMATIVE = {"yes", "y", "yeah", "yep", "sure", "ok", "okay", "confirm", "correct", "sim", "s", "claro", "isso", "si", "sí"}
_NEGATIVE = {"no", "n", "nope", "não", "nao", "negative", "wrong", "incorrect"}

GENDER_ALIASES = {
    "female": "female", "woman": "female", "f": "female", "feminino": "female", "mulher": "female", "femenino": "female",
    "male": "male", "man": "male", "m": "male", "masculino": "male", "homem": "male", "hombre": "male",
    "other": "other", "non-binary": "other", "nonbinary": "other", "outro": "other", "otro": "other",
    "prefer not to say": "prefer_not_to_say", "prefiro não dizer": "prefer_not_to_say",
    "prefiro nao dizer": "prefer_not_to_say", "prefiero no decir": "prefer_not_to_say",
}

_DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y")
MIN_AGE_YEARS = 18
MAX_AGE_YEARS = 120


def is_exit_phrase(text: str) -> bool:
    """True if ``text`` contains one of the exit phrases as a whole word or phrase, ignoring case."""
    return bool(_EXIT_PATTERN.search(text or ""))


def looks_like_name(text: str) -> bool:
    """
    Whether ``text`` is plausibly a bare personal name.

    A name is 2 to 100 characters long, has 1 to 5 words, contains no digits or
    special characters, is not a question and does not ask to confirm something.
    """
    candidate = (text or "").strip()
    if not 2 <= len(candidate) <= 100:
        return False
    if not 1 <= len(candidate.split()) <= 5:
        return False
    if _NAME_SPECIAL_CHARS.search(candidate):
        return False
    return "confirm" not in candidate.lower()


def normalize_name(text: str) -> Optional[str]:
    """
    Collapse whitespace in a personal name, or return None when it is not one.

    Letters are joined by spaces, hyphens, apostrophes and periods, so names such
    as "Jean-Luc Picard", "Sinead O'Connor" and "Mary J. Blige" are accepted.
    Digits and any other symbol are rejected. Unlike `looks_like_name` this does
    not guess whether free text is a name; it validates an answer to the name question.
    """
    candidate = " ".join((text or "").split())
    if not 2 <= len(candidate) <= 100:
        return None
    if not _PERSON_NAME_PATTERN.match(candidate):
        return None
    return candidate


def looks_like_email(text: str) -> bool:
    return bool(EMAIL_PATTERN.match((text or "").strip()))


def parse_yes_no(text: str) -> Optional[bool]:
    """Return True for an affirmative answer, False for a negative one, None otherwise."""
    words = re.findall(r"[\wáéíóúãõç]+", (text or "").lower())
    if not words:
        return None
    if words[0] in _AFFIRMATIVE:
        return True
    if words[0] in _NEGATIVE:
        return False
    return None


def parse_birthdate(text: str, today: Optional[date] = None) -> Optional[str]:
    """
    Parse a birth date and return it as ISO ``YYYY-MM-DD``.

    Accepts ``dd/mm/yyyy``, ``yyyy-mm-dd`` and ``dd-mm-yyyy``. Dates that are
    in the future or that imply an age outside 18 to 120 years are rejected.
    """
    today = today or date.today()
    candidate = (text or "").strip()
    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue
        if parsed >= today:
            return None
        age = today.year - parsed.year - ((today.month, today.day) < (parsed.month, parsed.day))
        if not MIN_AGE_YEARS <= age <= MAX_AGE_YEARS:
            return None
        return parsed.isoformat()
    return None


def normalize_gender(text: str) -> Optional[str]:
    return GENDER_ALIASES.get((text or "").strip().lower())


def normalize_country(text: str) -> Optional[str]:
    candidate = " ".join((text or "").split())
    if not 2 <= len(candidate) <= 56:
        return None
    if not _COUNTRY_PATTERN.match(candidate):
        return None
    return candidate.title()
