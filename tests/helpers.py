"""
Fake imaplib connection for tests.

Reproduces the (status, data) return shapes of imaplib.IMAP4_SSL, including
the (line, literal) tuples of FETCH data, on top of in-memory mailboxes.
"""

import imaplib
from dataclasses import dataclass, field
from typing import Dict, List, Optional


def imap_string(value: Optional[str]) -> str:
    if value is None:
        return "NIL"
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def unquote(name: str) -> str:
    if name.startswith('"') and name.endswith('"'):
        return name[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return name


@dataclass
class FakeMessage:
    uid: int
    subject: str = "Test message"
    sender: str = "sender@example.test"
    sender_name: Optional[str] = None
    recipient: str = "recipient@example.test"
    body: str = "Hello"
    header_subject: Optional[str] = None
    extra_headers: str = ""
    flags: List[str] = field(default_factory=list)

    def header_bytes(self) -> bytes:
        subject = self.header_subject if self.header_subject is not None else self.subject
        lines = [
            f"From: {self.sender}",
            f"To: {self.recipient}",
            f"Subject: {subject}",
            "Date: Mon, 16 Feb 2026 10:00:00 +0000",
            f"Message-ID: <msg-{self.uid}@example.test>",
        ]
        if self.extra_headers:
            lines.append(self.extra_headers)
        return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")

    def body_bytes(self) -> bytes:
        return self.body.encode("utf-8")

    def envelope(self) -> str:
        def address(addr: str, name: Optional[str]) -> str:
            mailbox, host = addr.split("@", 1)
            return f"(({imap_string(name)} NIL {imap_string(mailbox)} {imap_string(host)}))"

        return "({date} {subject} {frm} {frm} {frm} {to} NIL NIL NIL {mid})".format(
            date=imap_string("Mon, 16 Feb 2026 10:00:00 +0000"),
            subject=imap_string(self.subject),
            frm=address(self.sender, self.sender_name),
            to=address(self.recipient, None),
            mid=imap_string(f"<msg-{self.uid}@example.test>"),
        )

    def fetch_pieces(self, seq: int) -> list:
        header = self.header_bytes()
        body = self.body_bytes()
        first = f"{seq} (UID {self.uid} ENVELOPE {self.envelope()} RFC822.HEADER {{{len(header)}}}"
        return [
            (first.encode("utf-8"), header),
            (f" RFC822.TEXT {{{len(body)}}}".encode("ascii"), body),
            b")",
        ]


class FakeSocket:
    def __init__(self):
        self.timeout = None

    def settimeout(self, value):
        self.timeout = value


class FakeIMAP:
    """In-memory stand-in for imaplib.IMAP4_SSL."""

    error = imaplib.IMAP4.error

    def __init__(self, mailboxes: Optional[Dict[str, List[FakeMessage]]] = None,
                 capabilities=("IMAP4REV1", "MOVE", "UNSELECT"),
                 user: str = "user", password: str = "secret"):
        self.mailboxes = mailboxes if mailboxes is not None else {"INBOX": []}
        self.capabilities = tuple(capabilities)
        self.user = user
        self.password = password
        self.sock = FakeSocket()
        self.debug = 0
        self.commands: List[tuple] = []
        self.login_debug_level: Optional[int] = None
        self.selected: Optional[str] = None
        self.logged_out = False
        self.fail: Dict[str, str] = {}
        self.fetch_override: Optional[list] = None
        self.dialed = None

    def __call__(self, host, port, timeout=None):
        self.dialed = (host, port, timeout)
        return self

    @staticmethod
    def _send(*args) -> None:
        # imaplib encodes every str argument as ASCII before writing it
        for arg in args:
            if isinstance(arg, str):
                arg.encode("ascii")

    def _failing(self, name: str):
        if name in self.fail:
            return "NO", [self.fail[name].encode("utf-8")]
        return None

    def starttls(self):
        self.commands.append(("STARTTLS",))
        return self._failing("STARTTLS") or ("OK", [b"Begin TLS negotiation now"])

    def login(self, user, password):
        self.commands.append(("LOGIN", user))
        self.login_debug_level = self.debug
        self._send(user, password)
        if user != self.user or password != self.password:
            raise self.error("[AUTHENTICATIONFAILED] Invalid credentials")
        return "OK", [b"LOGIN completed"]

    def status(self, mailbox, names):
        self._send(mailbox, names)
        name = unquote(mailbox)
        self.commands.append(("STATUS", name))
        failure = self._failing("STATUS")
        if failure:
            return failure
        if name not in self.mailboxes:
            return "NO", [b"Mailbox doesn't exist"]
        return "OK", [f"{mailbox} (MESSAGES {len(self.mailboxes[name])})".encode("utf-8")]

    def select(self, mailbox, readonly=False):
        self._send(mailbox)
        name = unquote(mailbox)
        self.commands.append(("SELECT", name, readonly))
        failure = self._failing("SELECT")
        if failure:
            return failure
        self.selected = name
        return "OK", [str(len(self.mailboxes[name])).encode("ascii")]

    def fetch(self, message_set, parts):
        self.commands.append(("FETCH", message_set, parts))
        failure = self._failing("FETCH")
        if failure:
            return failure
        if self.fetch_override is not None:
            return "OK", self.fetch_override
        data = []
        for seq, message in enumerate(self.mailboxes[self.selected], 1):
            data.extend(message.fetch_pieces(seq))
        return "OK", data or [None]

    def _find(self, uid: str) -> FakeMessage:
        for message in self.mailboxes[self.selected]:
            if str(message.uid) == uid:
                return message
        raise KeyError(uid)

    def uid(self, command, *args):
        self._send(command, *args)
        self.commands.append(("UID", command) + args)
        failure = self._failing(command)
        if failure:
            return failure
        if command == "STORE":
            uid, _op, flags = args
            self._find(uid).flags.append(flags.strip("()"))
        elif command in ("MOVE", "COPY"):
            uid, dest = args
            message = self._find(uid)
            self.mailboxes.setdefault(unquote(dest), []).append(message)
            if command == "MOVE":
                self.mailboxes[self.selected].remove(message)
        return "OK", [None]

    def expunge(self):
        self.commands.append(("EXPUNGE",))
        failure = self._failing("EXPUNGE")
        if failure:
            return failure
        box = self.mailboxes[self.selected]
        box[:] = [m for m in box if "\\Deleted" not in m.flags]
        return "OK", [None]

    def unselect(self):
        self.commands.append(("UNSELECT",))
        self.selected = None
        return "OK", [b"UNSELECT completed"]

    def logout(self):
        self.commands.append(("LOGOUT",))
        self.logged_out = True
        return "BYE", [b"Logging out"]

    def command_names(self) -> List[str]:
        return [c[1] if c[0] == "UID" else c[0] for c in self.commands]
