"""
Tests for `shared/validators.py` – registration field heuristics.
"""

from datetime import date

import pytest

from shared.validators import (
    is_exit_phrase,
    looks_like_email,
    looks_like_name,
    normalize_country,
    normalize_name,
    normalize_gender,
    parse_birthdate,
    parse_yes_no,
)

TODAY = date(2026, 10, 19)


@pytest.mark.parametrize("text,expected", [
    ("John Smith", True),
    ("Maria da Silva Santos", True),
    ("J", False),
    ("John 3rd", False),
    ("What is this?", False),
    ("please confirm", False),
    ("one two three four five six", False),
])
def test_looks_like_name(text, expected):
    assert looks_like_name(text) is expected


@pytest.mark.parametrize("text,expected", [
    ("Jean-Luc Picard", "Jean-Luc Picard"),
    ("Sinead O'Connor", "Sinead O'Connor"),
    ("Mary J. Blige", "Mary J. Blige"),
    ("  José   Saramago ", "José Saramago"),
    ("J", None),
    ("R2-D2", None),
    ("Who are you?", None),
    ("john@example.com", None),
    ("-Dash", None),
])
def test_normalize_name(text, expected):
    assert normalize_name(text) == expected


@pytest.mark.parametrize("text,expected", [
    ("john@example.com", True),
    ("  john.smith@mail.co.uk ", True),
    ("john@example", False),
    ("john @example.com", False),
    ("not an email", False),
])
def test_looks_like_email(text, expected):
    assert looks_like_email(text) is expected


@pytest.mark.parametrize("text,expected", [
    ("I want to exit", True),
    ("CANCEL", True),
    ("não quero continuar", True),
    ("let's talk about something else", True),
    ("John Smith", False),
    ("stopwatch", False),
])
def test_is_exit_phrase(text, expected):
    assert is_exit_phrase(text) is expected


@pytest.mark.parametrize("text,expected", [
    ("yes", True),
    ("Sim, pode ser", True),
    ("ok!", True),
    ("no", False),
    ("Não", False),
    ("maybe later", None),
    ("", None),
])
def test_parse_yes_no(text, expected):
    assert parse_yes_no(text) is expected


def test_parse_birthdate_formats():
    assert parse_birthdate("15/05/1990", today=TODAY) == "1990-05-15"
    assert parse_birthdate("1990-05-15", today=TODAY) == "1990-05-15"
    assert parse_birthdate("15-05-1990", today=TODAY) == "1990-05-15"


def test_parse_birthdate_rejects_out_of_range():
    assert parse_birthdate("01/01/2030", today=TODAY) is None   # future
    assert parse_birthdate("20/10/2008", today=TODAY) is None   # 17 years old
    assert parse_birthdate("19/10/2008", today=TODAY) == "2008-10-19"
    assert parse_birthdate("01/01/1900", today=TODAY) is None   # older than 120
    assert parse_birthdate("31/02/1990", today=TODAY) is None
    assert parse_birthdate("yesterday", today=TODAY) is None


def test_normalize_gender_and_country():
    assert normalize_gender(" Feminino ") == "female"
    assert normalize_gender("prefer not to say") == "prefer_not_to_say"
    assert normalize_gender("robot") is None
    assert normalize_country("united   states") == "United States"
    assert normalize_country("Brasil") == "Brasil"
    assert normalize_country("123") is None
    assert normalize_country("X") is None
