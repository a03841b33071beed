"""
Tests for Mail extraction from FETCH responses.
"""

from email.header import Header

import pytest

from imap_search.errors import ExtractionError
from imap_search.fetch_response import FetchResponse, split_fetch_data
from imap_search.message import decode_mime_header, extract_mail, format_address_list
from tests.helpers import FakeMessage


def response_for(message: FakeMessage, seq: int = 1) -> FetchResponse:
    return FetchResponse(message.fetch_pieces(seq))


def test_extract_plain_message():
    message = FakeMessage(
        uid=123,
        subject="Invoice #123",
        sender="billing@example.test",
        sender_name="Billing Team",
        recipient="me@example.test",
        body="Please pay.\r\n",
    )

    mail = extract_mail(response_for(message))

    assert mail.uid == 123
    assert mail.subject == "Invoice #123"
    assert mail.sender == "Billing Team <billing@example.test>"
    assert mail.recipient == "me@example.test"
    assert mail.body == "Please pay.\r\n"


@pytest.mark.parametrize("text,charset", [
    ("Facture n°42 réglée", "utf-8"),
    ("Überweisung bestätigt", "iso-8859-1"),
    ("請求書のお知らせ", "utf-8"),
])
def test_encoded_subject_is_decoded(text, charset):
    encoded = Header(text, charset).encode()
    assert "=?" in encoded

    message = FakeMessage(uid=5, subject=encoded, header_subject=encoded)

    assert extract_mail(response_for(message)).subject == text


def test_decode_mime_header_round_trip():
    for text in ("plain ascii", "naïve café", "Ωmega & Straße"):
        assert decode_mime_header(Header(text, "utf-8").encode()) == text


def test_raw_utf8_headers_are_decoded():
    message = FakeMessage(uid=5, subject="Facture é", header_subject="Facture é")

    assert extract_mail(response_for(message)).subject == "Facture é"


def test_raw_utf8_sender_header_fallback():
    header = "From: Zoé <zoe@example.test>\r\nSubject: Reçu\r\n\r\n".encode("utf-8")
    pieces = [
        (b"1 (UID 4 ENVELOPE (NIL NIL NIL NIL NIL NIL NIL NIL NIL NIL) "
         + f"RFC822.HEADER {{{len(header)}}}".encode("ascii"), header),
        (b" RFC822.TEXT {2}", b"hi"),
        b")",
    ]

    mail = extract_mail(FetchResponse(pieces))

    assert mail.sender == "Zoé <zoe@example.test>"
    assert mail.subject == "Reçu"


def test_subject_falls_back_to_envelope():
    pieces = [
        (b'1 (UID 4 ENVELOPE (NIL "=?utf-8?q?Caf=C3=A9?=" NIL NIL NIL NIL NIL NIL NIL NIL) '
         b"RFC822.HEADER {24}", b"From: a@example.test\r\n\r\n"),
        (b" RFC822.TEXT {2}", b"hi"),
        b")",
    ]

    mail = extract_mail(FetchResponse(pieces))

    assert mail.subject == "Café"
    assert mail.sender == "a@example.test"
    assert mail.recipient == ""


def test_body_is_verbatim_in_header_charset():
    message = FakeMessage(
        uid=8,
        body="",
        extra_headers='Content-Type: text/plain; charset="iso-8859-1"\r\nContent-Transfer-Encoding: 8bit',
    )
    pieces = message.fetch_pieces(1)
    body = "Grüße =E9".encode("iso-8859-1")
    pieces[1] = (f" RFC822.TEXT {{{len(body)}}}".encode("ascii"), body)

    assert extract_mail(FetchResponse(pieces)).body == "Grüße =E9"


def test_body_section_aliases_are_accepted():
    pieces = [
        (b'1 (UID 6 ENVELOPE (NIL "s" NIL NIL NIL NIL NIL NIL NIL NIL) BODY[HEADER] {16}',
         b"Subject: hey\r\n\r\n"),
        (b" BODY[TEXT] {4}", b"text"),
        b")",
    ]

    mail = extract_mail(FetchResponse(pieces))

    assert mail.subject == "hey"
    assert mail.body == "text"


def test_format_address_list_skips_group_markers():
    addresses = [
        [None, None, b"team", None],
        [b"=?utf-8?q?Ren=C3=A9?=", None, b"rene", b"example.test"],
        [None, None, b"bob", b"example.test"],
        [None, None, None, None],
    ]

    assert format_address_list(addresses) == "René <rene@example.test>, bob@example.test"


@pytest.mark.parametrize("pieces", [
    [b"1 (FLAGS (\\Seen))"],
    [b'1 (UID 2 ENVELOPE ("broken'],
    [b"1 (UID x ENVELOPE (NIL NIL NIL NIL NIL NIL NIL NIL NIL NIL) RFC822.HEADER NIL RFC822.TEXT NIL)"],
    [b"1 (UID 2 ENVELOPE (NIL NIL NIL NIL NIL NIL NIL NIL NIL NIL) RFC822.HEADER NIL RFC822.TEXT NIL)"],
    [b'1 (UID 2 ENVELOPE (NIL NIL ("bad") NIL NIL NIL NIL NIL NIL NIL) RFC822.HEADER "" RFC822.TEXT "")'],
])
def test_malformed_responses_raise_extraction_error(pieces):
    with pytest.raises(ExtractionError):
        extract_mail(FetchResponse(pieces))


def test_extract_from_grouped_fetch_data():
    messages = [FakeMessage(uid=10, subject="first"), FakeMessage(uid=11, subject="second")]
    data = []
    for seq, message in enumerate(messages, 1):
        data.extend(message.fetch_pieces(seq))

    mails = [extract_mail(r) for r in split_fetch_data(data)]

    assert [(m.uid, m.subject) for m in mails] == [(10, "first"), (11, "second")]
