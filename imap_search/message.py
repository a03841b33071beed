"""
Mail records and their extraction from FETCH responses.
"""

import email
import email.errors
import email.policy
import logging
from dataclasses import dataclass
from email.header import decode_header, make_header
from email.message import Message
from typing import Any, Dict, List, Optional

from .errors import ExtractionError
from .fetch_response import FetchResponse, ResponseParseError

logger = logging.getLogger(__name__)

HEADER_ITEMS = ("RFC822.HEADER", "BODY[HEADER]")
TEXT_ITEMS = ("RFC822.TEXT", "BODY[TEXT]")

# ENVELOPE field positions
ENV_SUBJECT = 1
ENV_FROM = 2
ENV_TO = 5


@dataclass(frozen=True)
class Mail:
    """A fetched message reduced to the fields a search looks at."""

    sender: str
    recipient: str
    subject: str
    body: str
    uid: int


def decode_mime_header(value: str) -> str:
    """Decode RFC 2047 encoded-words into readable text.

    Args:
        value: Raw header value

    Returns:
        Decoded, whitespace-trimmed text
    """
    return str(make_header(decode_header(value))).strip()


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def format_address_list(addresses: Optional[List[Any]]) -> str:
    """Format an ENVELOPE address list as "Name <mailbox@host>, ...".

    Group start and end markers (NIL host) are skipped.
    """
    if not addresses:
        return ""
    if not isinstance(addresses, list):
        raise ExtractionError(f"address list expected, got {addresses!r}")

    formatted = []
    for address in addresses:
        if not isinstance(address, list) or len(address) != 4:
            raise ExtractionError(f"malformed envelope address {address!r}")
        name, _route, mailbox, host = address
        if host is None:
            continue
        addr = f"{_text(mailbox)}@{_text(host)}"
        display = decode_mime_header(_text(name)) if name else ""
        formatted.append(f"{display} <{addr}>" if display else addr)
    return ", ".join(formatted)


def _first_item(attrs: Dict[str, Any], names) -> Any:
    for name in names:
        if name in attrs:
            return attrs[name]
    raise ExtractionError(f"missing {names[0]} in fetch response")


def _decode_body(raw: bytes, headers: Message) -> str:
    charset = headers.get_content_charset() or "utf-8"
    try:
        return raw.decode(charset, errors="replace")
    except LookupError:
        logger.debug("Unknown charset %s, decoding body as utf-8", charset)
        return raw.decode("utf-8", errors="replace")


def parse_headers(raw: bytes) -> Message:
    """Parse a header block, accepting raw UTF-8 values (RFC 6532).

    Header fields come back with encoded-words already decoded.
    """
    text = raw.decode("utf-8", errors="replace")
    return email.message_from_string(text, policy=email.policy.default)


def extract_mail(response: FetchResponse) -> Mail:
    """Normalize one FETCH response into a Mail.

    Args:
        response: Raw per-message response from the bulk fetch

    Returns:
        Extracted Mail

    Raises:
        ExtractionError: If the response is malformed or misses an expected item
    """
    try:
        attrs = response.attributes()
    except (ResponseParseError, IndexError) as e:
        raise ExtractionError(f"malformed fetch response: {e}") from e

    uid_value = _first_item(attrs, ("UID",))
    if not isinstance(uid_value, str) or not uid_value.isdigit():
        raise ExtractionError(f"invalid UID {uid_value!r}")

    envelope = _first_item(attrs, ("ENVELOPE",))
    if not isinstance(envelope, list) or len(envelope) < ENV_TO + 1:
        raise ExtractionError("malformed ENVELOPE")

    header_raw = _first_item(attrs, HEADER_ITEMS)
    body_raw = _first_item(attrs, TEXT_ITEMS)
    if not isinstance(header_raw, bytes) or not isinstance(body_raw, bytes):
        raise ExtractionError("header or body part is missing")

    try:
        headers = parse_headers(header_raw)

        sender = format_address_list(envelope[ENV_FROM])
        if not sender and headers.get("From"):
            sender = str(headers["From"]).strip()

        recipient = format_address_list(envelope[ENV_TO])
        if not recipient and headers.get("To"):
            recipient = str(headers["To"]).strip()

        if headers.get("Subject") is not None:
            subject = str(headers["Subject"]).strip()
        else:
            subject = decode_mime_header(_text(envelope[ENV_SUBJECT]))
    except (email.errors.HeaderParseError, UnicodeError, LookupError, ValueError) as e:
        raise ExtractionError(f"cannot decode headers: {e}") from e

    return Mail(
        sender=sender,
        recipient=recipient,
        subject=subject,
        body=_decode_body(body_raw, headers),
        uid=int(uid_value),
    )
