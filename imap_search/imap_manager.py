"""
IMAP connection and operation management.

Wraps one imaplib session for a single search run: connect, mailbox status,
bulk fetch, and the delete/move actions applied to a matched message.
"""

import base64
import imaplib
import logging
import ssl
from typing import Any, Callable, List, Optional, Tuple

from .errors import ActionError, FetchError, IMAPConnectError, QueryError
from .fetch_response import FetchResponse, RawPiece, ResponseParseError, parse_response, split_fetch_data

logger = logging.getLogger(__name__)

DEFAULT_IMAP_PORT = 993
DEFAULT_MAILBOX = "INBOX"
LOGOUT_TIMEOUT = 5.0
FETCH_ITEMS = "(ENVELOPE RFC822.HEADER RFC822.TEXT UID)"

IMAPFactory = Callable[..., Any]


class CommandFailed(Exception):
    """An IMAP command completed with a non-OK status."""

    pass


# imaplib encodes str arguments as ASCII, so a bad mailbox name or credential
# surfaces as UnicodeError before anything is sent
COMMAND_ERRORS = (OSError, imaplib.IMAP4.error, UnicodeError, CommandFailed)


def check(response: Tuple[str, List[Any]]) -> List[Any]:
    """Return the data of an OK response.

    Args:
        response: (status, data) pair returned by an imaplib command

    Raises:
        CommandFailed: If the status is not OK
    """
    typ, data = response
    if typ != "OK":
        detail = b" ".join(d for d in data if isinstance(d, bytes)).decode("utf-8", errors="replace")
        raise CommandFailed(f"{typ} {detail}".strip())
    return data


def encode_mailbox_name(name: str) -> str:
    """Encode a mailbox name in IMAP modified UTF-7 (RFC 3501 section 5.1.3).

    Printable ASCII passes through except "&", which becomes "&-". Runs of
    other characters become "&" + base64 of their UTF-16BE form, with ","
    in place of "/" and no padding, + "-".

    Raises:
        UnicodeEncodeError: If the name holds a lone surrogate
    """
    out: List[str] = []
    pending: List[str] = []

    def flush() -> None:
        if pending:
            encoded = base64.b64encode("".join(pending).encode("utf-16-be"))
            out.append("&" + encoded.decode("ascii").rstrip("=").replace("/", ",") + "-")
            del pending[:]

    for char in name:
        if 0x20 <= ord(char) <= 0x7E:
            flush()
            out.append("&-" if char == "&" else char)
        else:
            pending.append(char)
    flush()
    return "".join(out)


def quote_mailbox(name: str) -> str:
    escaped = encode_mailbox_name(name).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def group_status_replies(data: List[Any]) -> List[List[RawPiece]]:
    """Split imaplib STATUS data into one list of pieces per untagged reply."""
    replies: List[List[RawPiece]] = []
    after_literal = False
    for piece in data:
        if piece is None:
            continue
        if after_literal and isinstance(piece, bytes):
            replies[-1].append(piece)
        elif isinstance(piece, (bytes, tuple)):
            replies.append([piece])
        after_literal = isinstance(piece, tuple)
    return replies


def normalize_address(host: str, port: str = "") -> Tuple[str, int]:
    """Resolve the host and port to dial.

    A port inside the host ("imap.example.com:1993") wins over the port
    argument. Otherwise an empty port means 993 and ":143" and "143" are
    accepted alike.

    Returns:
        (hostname, port number)

    Raises:
        IMAPConnectError: If the port is not numeric
    """
    if ":" in host:
        host, port = host.rsplit(":", 1)
    else:
        port = str(port).lstrip(":") or str(DEFAULT_IMAP_PORT)

    if not port.isdigit():
        raise IMAPConnectError(f"unable to dial: invalid port {port!r}")
    return host, int(port)


class IMAPManager:
    """Manages one authenticated IMAP session."""

    def __init__(self, conn: imaplib.IMAP4):
        """Initialize IMAP manager.

        Args:
            conn: Authenticated imaplib connection
        """
        self.conn = conn
        self.selected: Optional[str] = None

    @classmethod
    def connect(cls, host: str, port: str, username: str, password: str,
                debug: int = 0, login_debug: int = 0,
                imap_factory: Optional[IMAPFactory] = None) -> "IMAPManager":
        """Dial over TLS, upgrade with STARTTLS when advertised, then log in.

        The connection has no socket timeout. Protocol tracing uses the
        connection's own debug level: login_debug while credentials are
        exchanged, debug otherwise.

        Args:
            host: IMAP server hostname, optionally with ":port"
            port: IMAP server port, may be empty
            username: IMAP username
            password: IMAP password
            debug: imaplib trace level for the session
            login_debug: imaplib trace level during LOGIN
            imap_factory: Connection class, defaults to imaplib.IMAP4_SSL

        Returns:
            Connected IMAPManager

        Raises:
            IMAPConnectError: If dial, STARTTLS or login fails
        """
        hostname, port_number = normalize_address(host, port)
        factory = imap_factory or imaplib.IMAP4_SSL

        try:
            conn = factory(hostname, port_number, timeout=None)
        except (OSError, imaplib.IMAP4.error, UnicodeError) as e:
            raise IMAPConnectError(f"unable to dial: {e}") from e

        manager = cls(conn)
        try:
            if "STARTTLS" in conn.capabilities and not isinstance(conn.sock, ssl.SSLSocket):
                try:
                    check(conn.starttls())
                except COMMAND_ERRORS as e:
                    raise IMAPConnectError(f"unable to start TLS: {e}") from e

            conn.debug = login_debug
            try:
                check(conn.login(username, password))
            except COMMAND_ERRORS as e:
                raise IMAPConnectError(f"unable to login: {e}") from e
            conn.debug = debug
        except Exception:
            manager.close()
            raise

        logger.debug("Logged in to %s:%d as %s", hostname, port_number, username)
        return manager

    def query_count(self, mailbox: str) -> int:
        """Count messages in a mailbox using STATUS.

        Message counts of every STATUS reply are summed. A mailbox name the
        server sends as a literal arrives as a (line, literal) tuple followed
        by the rest of the reply.

        Args:
            mailbox: Mailbox name

        Returns:
            Number of messages, zero for an empty mailbox

        Raises:
            QueryError: If the STATUS command fails
        """
        try:
            data = check(self.conn.status(quote_mailbox(mailbox), "(MESSAGES)"))
        except COMMAND_ERRORS as e:
            raise QueryError(str(e)) from e

        count = 0
        for reply in group_status_replies(data):
            try:
                parsed = parse_response(reply)
            except ResponseParseError:
                logger.warning("Ignoring unparsable STATUS reply %r", reply)
                continue
            if not parsed or not isinstance(parsed[-1], list):
                continue
            items = parsed[-1]
            for name, value in zip(items[0::2], items[1::2]):
                if isinstance(name, str) and name.upper() == "MESSAGES" and str(value).isdigit():
                    count += int(value)
        return count

    def select(self, mailbox: str) -> None:
        """Select a mailbox read-write.

        Raises:
            FetchError: If SELECT fails
        """
        logger.debug("Selecting %s", mailbox)
        try:
            check(self.conn.select(quote_mailbox(mailbox), readonly=False))
        except COMMAND_ERRORS as e:
            logger.error("Error with select %s: %s", mailbox, e)
            raise FetchError(f"cannot select {mailbox}: {e}") from e
        self.selected = mailbox

    def fetch_all(self, mailbox: str, expected: int) -> List[FetchResponse]:
        """Fetch envelope, header, text and UID of every message.

        Selects the mailbox read-write, then issues one FETCH over 1:*.
        imaplib keeps reading responses until the command completes; there is
        no timeout, so a silent server blocks this call.

        Args:
            mailbox: Mailbox to fetch from
            expected: Message count reported by STATUS

        Returns:
            Per-message responses in the order the server sent them

        Raises:
            FetchError: If SELECT or FETCH fails
        """
        self.select(mailbox)

        try:
            data = check(self.conn.fetch("1:*", FETCH_ITEMS))
        except COMMAND_ERRORS as e:
            logger.error("Error with fetch: %s", e)
            raise FetchError(str(e)) from e

        responses = split_fetch_data(data)
        logger.debug("Fetched %d messages (%d expected)", len(responses), expected)
        return responses

    def delete_message(self, uid: int) -> None:
        """Flag a message deleted without notifications, then expunge.

        Raises:
            ActionError: If STORE or EXPUNGE fails
        """
        try:
            check(self.conn.uid("STORE", str(uid), "+FLAGS.SILENT", r"(\Deleted)"))
        except COMMAND_ERRORS as e:
            raise ActionError(f"error while deleting msg, err: {e}") from e

        try:
            check(self.conn.expunge())
        except COMMAND_ERRORS as e:
            raise ActionError(f"error while expunging messages: err: {e}") from e

    def move_message(self, uid: int, dest_folder: str) -> None:
        """Move a message to the destination folder.

        Uses UID MOVE (RFC 6851) when the server advertises it, otherwise
        COPY followed by a silent delete and EXPUNGE.

        Raises:
            ActionError: If any of the commands fails
        """
        try:
            if "MOVE" in self.conn.capabilities:
                check(self.conn.uid("MOVE", str(uid), quote_mailbox(dest_folder)))
                return

            check(self.conn.uid("COPY", str(uid), quote_mailbox(dest_folder)))
            check(self.conn.uid("STORE", str(uid), "+FLAGS.SILENT", r"(\Deleted)"))
            check(self.conn.expunge())
        except COMMAND_ERRORS as e:
            raise ActionError(f"error while move msg to {dest_folder}: {e}") from e

    def close(self) -> None:
        """Leave the selected mailbox without expunging and log out.

        Logout runs with a bounded socket timeout. Failures are logged only.
        """
        if self.selected is not None and "UNSELECT" in self.conn.capabilities:
            try:
                self.conn.unselect()
            except (OSError, imaplib.IMAP4.error) as e:
                logger.warning("Cannot unselect %s: %s", self.selected, e)
        self.selected = None

        sock = getattr(self.conn, "sock", None)
        try:
            if sock is not None:
                sock.settimeout(LOGOUT_TIMEOUT)
            self.conn.logout()
        except (OSError, imaplib.IMAP4.error) as e:
            logger.warning("Logout failed: %s", e)

    def __enter__(self) -> "IMAPManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
