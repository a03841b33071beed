"""
IMAP response parsing.

imaplib hands FETCH results back as a flat list mixing plain lines and
(line, literal) tuples. This module groups that list into one FetchResponse
per message and parses the parenthesised data items on demand.

Parsed values use three shapes: atoms are str (NIL becomes None), quoted
strings and literals are bytes, parenthesised lists are Python lists.
"""

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

RawPiece = Union[bytes, Tuple[bytes, bytes]]

_LITERAL_MARKER = re.compile(rb"\{(\d+)\}$")
_MESSAGE_START = re.compile(rb"^\d+ \(")
_ATOM_STOP = b' ()"{\r\n'


class ResponseParseError(ValueError):
    """Malformed IMAP response data."""

    pass


class _Literal:
    __slots__ = ("data",)

    def __init__(self, data: bytes):
        self.data = data


class _Reader:
    """Cursor over text chunks and literal chunks."""

    def __init__(self, chunks: List[Union[bytes, _Literal]]):
        self.chunks = chunks
        self.index = 0
        self.pos = 0

    def _skip_exhausted(self) -> None:
        while self.index < len(self.chunks):
            chunk = self.chunks[self.index]
            if isinstance(chunk, _Literal) or self.pos < len(chunk):
                return
            self.index += 1
            self.pos = 0

    def at_end(self) -> bool:
        self._skip_exhausted()
        return self.index >= len(self.chunks)

    def at_literal(self) -> bool:
        self._skip_exhausted()
        return self.index < len(self.chunks) and isinstance(self.chunks[self.index], _Literal)

    def take_literal(self) -> bytes:
        data = self.chunks[self.index].data
        self.index += 1
        self.pos = 0
        return data

    def peek(self) -> bytes:
        """Next byte of the current text chunk, b"" at a literal or the end."""
        if self.at_end() or self.at_literal():
            return b""
        chunk = self.chunks[self.index]
        return chunk[self.pos:self.pos + 1]

    def advance(self) -> bytes:
        char = self.peek()
        if char:
            self.pos += 1
        return char


def _to_chunks(pieces: Sequence[RawPiece]) -> List[Union[bytes, _Literal]]:
    chunks: List[Union[bytes, _Literal]] = []
    for piece in pieces:
        if isinstance(piece, tuple):
            line, literal = piece
            match = _LITERAL_MARKER.search(line)
            if match is None:
                raise ResponseParseError(f"literal without size marker: {line[-40:]!r}")
            chunks.append(line[:match.start()])
            chunks.append(_Literal(literal))
        elif isinstance(piece, (bytes, bytearray)):
            chunks.append(bytes(piece))
        else:
            raise ResponseParseError(f"unexpected response piece {type(piece).__name__}")
    return chunks


def _read_quoted(reader: _Reader) -> bytes:
    reader.advance()  # opening quote
    out = bytearray()
    while True:
        char = reader.advance()
        if not char:
            raise ResponseParseError("unterminated quoted string")
        if char == b'"':
            return bytes(out)
        if char == b"\\":
            char = reader.advance()
            if not char:
                raise ResponseParseError("dangling escape in quoted string")
        out += char


def _read_atom(reader: _Reader) -> Optional[str]:
    out = bytearray()
    depth = 0
    while True:
        char = reader.peek()
        if not char:
            break
        if depth == 0 and char in _ATOM_STOP:
            break
        if char == b"[":
            depth += 1
        elif char == b"]" and depth:
            depth -= 1
        out += reader.advance()
    if depth:
        raise ResponseParseError("unbalanced section brackets")
    atom = out.decode("utf-8", errors="replace")
    if atom.upper() == "NIL":
        return None
    return atom


def _parse_items(reader: _Reader, nested: bool) -> List[Any]:
    items: List[Any] = []
    while True:
        if reader.at_literal():
            items.append(reader.take_literal())
            continue
        char = reader.peek()
        if not char:
            if nested:
                raise ResponseParseError("unterminated list")
            return items
        if char in b" \r\n":
            reader.advance()
        elif char == b"(":
            reader.advance()
            items.append(_parse_items(reader, nested=True))
        elif char == b")":
            if not nested:
                raise ResponseParseError("unbalanced closing parenthesis")
            reader.advance()
            return items
        elif char == b'"':
            items.append(_read_quoted(reader))
        elif char == b"{":
            raise ResponseParseError("inline literal without data")
        else:
            items.append(_read_atom(reader))


def parse_response(pieces: Sequence[RawPiece]) -> List[Any]:
    """Parse raw imaplib response pieces into nested values.

    Args:
        pieces: Plain lines and (line, literal) tuples belonging to one response

    Returns:
        Top-level list of parsed values

    Raises:
        ResponseParseError: If the data is not well formed
    """
    return _parse_items(_Reader(_to_chunks(pieces)), nested=False)


def parse_line(line: bytes) -> List[Any]:
    """Parse a single response line without literals."""
    return parse_response([line])


def items_to_dict(items: List[Any]) -> Dict[str, Any]:
    """Turn a flat "NAME value NAME value" list into a dict keyed by upper-case name."""
    if len(items) % 2:
        raise ResponseParseError("odd number of data items")
    result = {}
    for name, value in zip(items[0::2], items[1::2]):
        if not isinstance(name, str):
            raise ResponseParseError(f"data item name expected, got {name!r}")
        result[name.upper()] = value
    return result


class FetchResponse:
    """Raw data of one untagged FETCH response."""

    def __init__(self, pieces: List[RawPiece]):
        self.pieces = pieces

    @property
    def sequence(self) -> Optional[int]:
        first = self.pieces[0]
        line = first[0] if isinstance(first, tuple) else first
        head = line.split(b" ", 1)[0]
        return int(head) if head.isdigit() else None

    def attributes(self) -> Dict[str, Any]:
        """Parse the message data items.

        Returns:
            Mapping of upper-case item name (UID, ENVELOPE, RFC822.HEADER, ...) to value

        Raises:
            ResponseParseError: If the response is malformed
        """
        parsed = parse_response(self.pieces)
        if len(parsed) != 2 or not isinstance(parsed[1], list):
            raise ResponseParseError("expected '<seq> (<data items>)'")
        return items_to_dict(parsed[1])

    def __repr__(self) -> str:
        return f"FetchResponse(sequence={self.sequence})"


def split_fetch_data(data: Sequence[Any]) -> List[FetchResponse]:
    """Group imaplib FETCH data into per-message responses, preserving server order.

    Args:
        data: Data list returned by imaplib's fetch()

    Returns:
        One FetchResponse per message
    """
    responses: List[FetchResponse] = []
    current: Optional[List[RawPiece]] = None

    for piece in data:
        if piece is None:
            continue
        line = piece[0] if isinstance(piece, tuple) else piece
        if _MESSAGE_START.match(line) or current is None:
            current = [piece]
            responses.append(FetchResponse(current))
        else:
            current.append(piece)

    return responses
