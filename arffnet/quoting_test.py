"""Tests for quoting of names and labels."""

import pytest

from arffnet.quoting import backslashify, needs_quotes, quote, unbackslashify, unquote


@pytest.mark.parametrize(
    "text, expected",
    [
        ("sunny", False),
        ("3.5", False),
        ("", True),
        ("?", True),
        ("a b", True),
        ("a,b", True),
        ("it's", True),
        ('say "hi"', True),
        ("50%", True),
        ("{x}", True),
        ("tab\there", True),
        ("new\nline", True),
        ("??", False),
    ],
)
def test_needs_quotes(text: str, expected: bool) -> None:
    assert needs_quotes(text) is expected


@pytest.mark.parametrize(
    "text",
    ["", "?", "'", '"', "a b", "a,b", "tab\there", "new\nline", "cr\rhere", "100%", "{", "}", "back\\slash", "plain"],
)
def test_quote_unquote_is_identity(text: str) -> None:
    assert unquote(quote(text)) == text


def test_quote_leaves_safe_tokens_alone() -> None:
    assert quote("sunny") == "sunny"
    assert quote("?") == "'?'"
    assert quote("") == "''"


def test_backslashify_escapes_control_characters() -> None:
    assert backslashify("a\tb\nc") == "a\\tb\\nc"
    assert backslashify("50%") == "50\\%"
    assert backslashify("it's") == "it\\'s"


def test_unbackslashify_unknown_and_trailing_escapes() -> None:
    assert unbackslashify("\\q") == "q"
    assert unbackslashify("end\\") == "end\\"
    assert unbackslashify("\\\\") == "\\"


def test_unquote_requires_matching_quotes() -> None:
    assert unquote("'abc\"") == "'abc\""
    assert unquote('"a b"') == "a b"
