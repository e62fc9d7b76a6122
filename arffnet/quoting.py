"""Quoting helpers for names and labels written to ARFF text."""

from __future__ import annotations

import re

from arffnet.config import COMMENT_CHAR, MISSING_TOKEN

# Characters that would split or terminate an unquoted token
_NEEDS_QUOTES_RE = re.compile(r"[\s,'\"%{}\x00-\x1f\x7f]")

_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    COMMENT_CHAR: "\\" + COMMENT_CHAR,
}
_UNESCAPES = {"n": "\n", "r": "\r", "t": "\t"}


def needs_quotes(text: str) -> bool:
    """Return True if ``text`` cannot be written as a bare ARFF token.

    >>> needs_quotes("sunny")
    False
    >>> needs_quotes("two words")
    True
    >>> needs_quotes("?")
    True
    >>> needs_quotes("")
    True
    """
    return text == "" or text == MISSING_TOKEN or _NEEDS_QUOTES_RE.search(text) is not None


def backslashify(text: str) -> str:
    """Escape quote, backslash, comment and line-break characters."""
    return "".join(_ESCAPES.get(char, char) for char in text)


def unbackslashify(text: str) -> str:
    """Decode the escapes produced by :func:`backslashify`.

    Unknown escapes decode to the escaped character itself; a trailing lone
    backslash is kept as is.
    """
    out: list[str] = []
    chars = iter(text)
    for char in chars:
        if char != "\\":
            out.append(char)
            continue
        escaped = next(chars, None)
        if escaped is None:
            out.append("\\")
        else:
            out.append(_UNESCAPES.get(escaped, escaped))
    return "".join(out)


def quote(text: str) -> str:
    """Quote ``text`` with single quotes if it is not a safe bare token.

    >>> quote("sunny")
    'sunny'
    >>> quote("it's")
    "'it\\\\'s'"
    >>> quote("")
    "''"
    """
    if not needs_quotes(text):
        return text
    return f"'{backslashify(text)}'"


def unquote(text: str) -> str:
    """Invert :func:`quote`.

    >>> unquote(quote("a, b"))
    'a, b'
    >>> unquote("plain")
    'plain'
    """
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return unbackslashify(text[1:-1])
    return text
