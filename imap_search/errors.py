"""
Error types for IMAP Search.

Every failure of a search run maps to one of these classes. All of them are
reported as text in the step result; only StepDecodeError escapes to the
caller.
"""


class StepDecodeError(Exception):
    """The untyped step configuration could not be decoded."""

    pass


class IMAPSearchError(Exception):
    """Base class for failures reported inside the step result."""

    pass


class ConfigurationError(IMAPSearchError):
    """No search pattern was configured."""

    pass


class IMAPConnectError(IMAPSearchError):
    """Dial, STARTTLS or login failed."""

    pass


class QueryError(IMAPSearchError):
    """Mailbox STATUS failed."""

    pass


class FetchError(IMAPSearchError):
    """SELECT or bulk FETCH failed."""

    pass


class ExtractionError(IMAPSearchError):
    """A single fetch response could not be turned into a Mail.

    The search skips the message and keeps scanning.
    """

    pass


class PatternError(IMAPSearchError):
    """A search pattern failed to compile. Aborts the whole search."""

    pass


class MailboxEmptyError(IMAPSearchError):
    """The selected mailbox holds no message."""

    def __init__(self, message: str = "no message to fetch"):
        super().__init__(message)


class MailNotFoundError(IMAPSearchError):
    """No fetched message satisfied every configured pattern."""

    def __init__(self, message: str = "mail not found"):
        super().__init__(message)


class ActionError(IMAPSearchError):
    """Delete, expunge or move of the matched message failed."""

    pass
