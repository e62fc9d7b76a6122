"""Streaming reader for the ARFF text format.

The reader has two states. In the header it consumes ``@relation`` and
``@attribute`` declarations until ``@data``; in the data section it turns
each line into one Instance. The first error aborts the whole read and is
reported with the physical line number where it was detected.

Typical batch usage::

    dataset = load_arff(Path("weather.arff"))

Incremental usage::

    with path.open() as stream:
        reader = ArffReader(stream)
        structure = reader.read_header()
        for instance in reader:
            ...
"""

from __future__ import annotations

import gzip
import io
import math
import re
from collections.abc import Iterator
from enum import Enum
from pathlib import Path
from typing import NamedTuple, TextIO

from loguru import logger

from arffnet.attribute import Attribute, make_nominal, make_numeric
from arffnet.config import (
    ARFF_ATTRIBUTE,
    ARFF_DATA,
    ARFF_RELATION,
    COMMENT_CHAR,
    COMPRESSED_EXTENSION,
    DEFAULT_CAPACITY,
    MISSING_TOKEN,
    NUMERIC_TYPE_NAMES,
    QUOTE_CHARS,
    STRUCTURE_CAPACITY,
)
from arffnet.dataset import Dataset, Schema
from arffnet.exceptions import (
    EmptyHeaderError,
    FormatError,
    NumberFormatError,
    SchemaError,
    UnknownNominalValueError,
)
from arffnet.instance import MISSING_VALUE, Instance
from arffnet.quoting import unbackslashify

_DECIMAL_RE = re.compile(
    r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|[+-]?(?:inf|infinity)",
    re.IGNORECASE,
)


# =============================================================================
# Tokenizer
# =============================================================================


class TokenType(Enum):
    WORD = "word"
    MISSING = "missing"
    OPEN_BRACE = "{"
    CLOSE_BRACE = "}"
    EOL = "end of line"
    EOF = "end of file"


class Token(NamedTuple):
    type: TokenType
    text: str
    line: int

    def describe(self) -> str:
        if self.type in (TokenType.WORD, TokenType.MISSING):
            return f"Token[{self.text}]"
        return f"Token[{self.type.value}]"


class Tokenizer:
    """Splits ARFF text into tokens, one physical line at a time.

    Whitespace and commas separate tokens, ``%`` comments out the rest of a
    line, ``'`` and ``"`` quote a single word (escapes decoded), ``{`` and
    ``}`` are tokens of their own and line ends are significant. An unquoted
    ``?`` is reported as MISSING.
    """

    def __init__(self, stream: TextIO, line_offset: int = 0) -> None:
        self._stream = stream
        self._line_offset = line_offset
        self._lines_read = 0
        self._pending: list[Token] = []
        self._exhausted = False

    @property
    def line_number(self) -> int:
        """Physical line number of the most recently read line."""
        return self._line_offset + self._lines_read

    def push_back(self, token: Token) -> None:
        self._pending.append(token)

    def next_token(self) -> Token:
        while not self._pending:
            if self._exhausted:
                return Token(TokenType.EOF, "", self.line_number)
            self._read_line()
        return self._pending.pop()

    def _read_line(self) -> None:
        raw = self._stream.readline()
        if raw == "":
            self._exhausted = True
            return
        self._lines_read += 1
        line = self.line_number

        has_newline = raw.endswith("\n")
        tokens = list(_lex(raw.rstrip("\r\n"), line))
        if has_newline:
            tokens.append(Token(TokenType.EOL, "", line))
        # stored reversed so pop() yields them in order
        self._pending = tokens[::-1]


def _lex(text: str, line: int) -> Iterator[Token]:
    position = 0
    length = len(text)
    while position < length:
        char = text[position]
        if char.isspace() or char == "," or ord(char) < 32:
            position += 1
        elif char == COMMENT_CHAR:
            return
        elif char == "{":
            position += 1
            yield Token(TokenType.OPEN_BRACE, char, line)
        elif char == "}":
            position += 1
            yield Token(TokenType.CLOSE_BRACE, char, line)
        elif char in QUOTE_CHARS:
            end = position + 1
            while end < length and text[end] != char:
                end += 2 if text[end] == "\\" else 1
            yield Token(TokenType.WORD, unbackslashify(text[position + 1 : min(end, length)]), line)
            position = end + 1
        else:
            end = position
            while end < length and not _ends_word(text[end]):
                end += 1
            word = text[position:end]
            position = end
            kind = TokenType.MISSING if word == MISSING_TOKEN else TokenType.WORD
            yield Token(kind, word, line)


def _ends_word(char: str) -> bool:
    return (
        char.isspace()
        or ord(char) < 32
        or char in (",", "{", "}", COMMENT_CHAR)
        or char in QUOTE_CHARS
    )


# =============================================================================
# Reader
# =============================================================================


class ArffReader:
    """Parses ARFF text from a stream into a Dataset.

    Args:
        stream: Text stream positioned at the start of the header
        lines_consumed: Lines already read from the underlying source by an
            earlier reader, added to every reported line number
    """

    def __init__(self, stream: TextIO, lines_consumed: int = 0) -> None:
        self._tokenizer = Tokenizer(stream, line_offset=lines_consumed)
        self._data: Dataset | None = None

    @classmethod
    def resume(
        cls,
        stream: TextIO,
        template: Schema,
        lines_consumed: int,
        relation: str = "",
        capacity: int = DEFAULT_CAPACITY,
    ) -> ArffReader:
        """Reader for data rows only, checked against an existing header.

        The returned reader keeps ``template`` alive through its dataset, so
        the instances it produces stay bound.
        """
        reader = cls(stream, lines_consumed=lines_consumed)
        reader._data = Dataset(relation, template, capacity=capacity)
        return reader

    @property
    def line_number(self) -> int:
        return self._tokenizer.line_number

    def structure(self) -> Dataset:
        """Empty dataset holding the header read so far."""
        assert self._data is not None, "read_header() must be called first"
        return self._data.structure(capacity=0)

    # -------------------------------------------------------------------------
    # Token helpers
    # -------------------------------------------------------------------------

    def _error(
        self, message: str, token: Token, error_class: type[FormatError] = FormatError
    ) -> FormatError:
        return error_class(message, line=token.line, token=token.describe())

    def _first_token(self) -> Token:
        """Next token, skipping empty lines."""
        token = self._tokenizer.next_token()
        while token.type == TokenType.EOL:
            token = self._tokenizer.next_token()
        return token

    def _next_token(self) -> Token:
        """Next token on the current line."""
        token = self._tokenizer.next_token()
        if token.type == TokenType.EOL:
            raise self._error("premature end of line", token)
        if token.type == TokenType.EOF:
            raise self._error("premature end of file", token)
        return token

    def _expect_line_end(self, *, eof_ok: bool) -> None:
        token = self._tokenizer.next_token()
        if token.type == TokenType.EOL:
            return
        if token.type == TokenType.EOF and eof_ok:
            return
        raise self._error("end of line expected", token)

    def _skip_to_line_end(self) -> None:
        token = self._tokenizer.next_token()
        while token.type not in (TokenType.EOL, TokenType.EOF):
            token = self._tokenizer.next_token()
        self._tokenizer.push_back(token)

    @staticmethod
    def _is_keyword(token: Token, keyword: str) -> bool:
        return token.type == TokenType.WORD and token.text.lower() == keyword

    # -------------------------------------------------------------------------
    # Header
    # -------------------------------------------------------------------------

    def read_header(self, capacity: int = DEFAULT_CAPACITY) -> Dataset:
        """Read the header and return an empty dataset with its schema.

        Raises:
            FormatError: If a keyword is missing or a declaration is malformed
            EmptyHeaderError: If ``@data`` follows no ``@attribute`` line
        """
        token = self._first_token()
        if token.type == TokenType.EOF:
            raise self._error("premature end of file", token)
        if not self._is_keyword(token, ARFF_RELATION):
            raise self._error(f"keyword {ARFF_RELATION} expected", token)
        relation = self._next_token().text
        self._expect_line_end(eof_ok=False)

        attributes: list[Attribute] = []
        token = self._first_token()
        if token.type == TokenType.EOF:
            raise self._error("premature end of file", token)
        while self._is_keyword(token, ARFF_ATTRIBUTE):
            attributes.append(self._parse_attribute(token))
            token = self._first_token()
            if token.type == TokenType.EOF:
                raise self._error("premature end of file", token)

        if not self._is_keyword(token, ARFF_DATA):
            raise self._error(f"keyword {ARFF_DATA} expected", token)
        if not attributes:
            raise self._error("no attributes declared", token, EmptyHeaderError)

        try:
            schema = Schema(attributes)
        except SchemaError as e:
            raise FormatError(str(e), line=token.line) from e

        self._data = Dataset(relation, schema, capacity=capacity)
        logger.debug(
            "Read ARFF header",
            relation=relation,
            attributes=len(attributes),
            line=token.line,
        )
        return self._data

    def _parse_attribute(self, keyword: Token) -> Attribute:
        name_token = self._next_token()
        if name_token.type not in (TokenType.WORD, TokenType.MISSING):
            raise self._error("attribute name expected", name_token)
        name = name_token.text

        type_token = self._next_token()
        if type_token.type == TokenType.WORD:
            if type_token.text.lower() not in NUMERIC_TYPE_NAMES:
                raise self._error("no valid attribute type or invalid enumeration", type_token)
            attribute = make_numeric(name)
            self._skip_to_line_end()
        elif type_token.type == TokenType.OPEN_BRACE:
            labels = self._parse_enumeration()
            try:
                attribute = make_nominal(name, labels)
            except SchemaError as e:
                raise FormatError(str(e), line=keyword.line) from e
        else:
            raise self._error("no valid attribute type or invalid enumeration", type_token)

        self._expect_line_end(eof_ok=False)
        return attribute

    def _parse_enumeration(self) -> list[str]:
        labels: list[str] = []
        token = self._tokenizer.next_token()
        while token.type != TokenType.CLOSE_BRACE:
            if token.type == TokenType.EOL:
                raise self._error("} expected at end of enumeration", token)
            if token.type == TokenType.EOF:
                raise self._error("premature end of file", token)
            if token.type == TokenType.OPEN_BRACE:
                raise self._error("nested { in enumeration", token)
            labels.append(token.text)
            token = self._tokenizer.next_token()
        return labels

    # -------------------------------------------------------------------------
    # Data
    # -------------------------------------------------------------------------

    def read_instance(self) -> Instance | None:
        """Read the next data row, or return None at end of stream.

        Raises:
            FormatError: If the row is malformed
            UnknownNominalValueError: If a label was not declared
            NumberFormatError: If a numeric cell is not a number
        """
        if self._data is None or self._data.num_attributes == 0:
            token = Token(TokenType.EOF, "", self.line_number)
            raise self._error("no header information available", token)

        token = self._first_token()
        if token.type == TokenType.EOF:
            return None
        if token.type == TokenType.OPEN_BRACE:
            raise self._error("sparse instances are not supported", token)

        schema = self._data.schema
        values = [MISSING_VALUE] * schema.num_attributes
        for index, attribute in enumerate(schema):
            if index > 0:
                token = self._next_token()
            values[index] = self._parse_cell(token, attribute)

        weight = self._read_weight()
        return Instance(values, weight, schema)

    def _parse_cell(self, token: Token, attribute: Attribute) -> float:
        if token.type == TokenType.MISSING:
            return MISSING_VALUE
        if token.type != TokenType.WORD:
            raise self._error("not a valid value", token)

        if attribute.is_nominal:
            position = attribute.index_of_value(token.text)
            if position == -1:
                raise self._error(
                    "nominal value not declared in header", token, UnknownNominalValueError
                )
            return float(position)

        if _DECIMAL_RE.fullmatch(token.text) is None:
            raise self._error("number expected", token, NumberFormatError)
        return float(token.text)

    def _read_weight(self) -> float:
        """Consume an optional ``{weight}`` and the end of the line."""
        token = self._tokenizer.next_token()
        if token.type in (TokenType.EOL, TokenType.EOF):
            return 1.0
        if token.type != TokenType.OPEN_BRACE:
            raise self._error("end of line expected", token)

        weight = 1.0
        token = self._tokenizer.next_token()
        if token.type == TokenType.WORD:
            try:
                weight = float(token.text)
            except ValueError:
                logger.warning(f"Ignoring unparsable instance weight {token.text!r} on line {token.line}")
            else:
                if not math.isfinite(weight):
                    logger.warning(f"Ignoring non-finite instance weight {token.text!r} on line {token.line}")
                    weight = 1.0
            token = self._tokenizer.next_token()
        if token.type != TokenType.CLOSE_BRACE:
            raise self._error("Problem reading instance weight", token)

        self._expect_line_end(eof_ok=True)
        return weight

    def __iter__(self) -> Iterator[Instance]:
        while (instance := self.read_instance()) is not None:
            yield instance

    def read_all(self) -> Dataset:
        """Read every remaining row into the dataset and return it."""
        if self._data is None:
            self.read_header()
        assert self._data is not None
        for instance in self:
            self._data.add(instance)
        self._data.compactify()
        return self._data


# =============================================================================
# Entry points
# =============================================================================


def read_arff(stream: TextIO) -> Dataset:
    """Parse a complete ARFF document from an open text stream."""
    return ArffReader(stream).read_all()


def parse_arff(text: str) -> Dataset:
    """Parse a complete ARFF document held in a string.

    >>> data = parse_arff("@relation r\\n@attribute a numeric\\n@data\\n1.5\\n")
    >>> data.instance(0).value(0)
    1.5
    """
    return read_arff(io.StringIO(text))


def _open_text(path: Path, mode: str = "r") -> TextIO:
    if path.suffix == COMPRESSED_EXTENSION:
        return gzip.open(path, mode + "t", encoding="utf-8")  # type: ignore[return-value]
    return path.open(mode, encoding="utf-8")


def load_arff(path: Path) -> Dataset:
    """Load an ARFF file (optionally gzip-compressed).

    The file is closed on every exit path, including parse failures.
    """
    assert path.exists(), f"ARFF file not found: {path}"
    logger.info(f"Loading ARFF data from {path}")
    with _open_text(path) as stream:
        dataset = read_arff(stream)
    logger.info(
        "Loaded dataset",
        relation=dataset.name,
        attributes=dataset.num_attributes,
        instances=dataset.num_instances,
    )
    return dataset


def load_structure(path: Path) -> Dataset:
    """Read only the header of an ARFF file."""
    assert path.exists(), f"ARFF file not found: {path}"
    with _open_text(path) as stream:
        return ArffReader(stream).read_header(capacity=STRUCTURE_CAPACITY).structure()


def save_arff(dataset: Dataset, path: Path) -> None:
    """Write ``dataset`` as ARFF text (gzip-compressed for ``.gz`` paths)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with _open_text(path, "w") as stream:
        stream.write(dataset.to_arff())
    logger.info(f"Saved {dataset.num_instances} instances to {path}")
