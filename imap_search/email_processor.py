"""
Main search orchestrator.

Runs one IMAP search step: connect, count, fetch, match messages in fetch
order, apply the post-match action to the first match and report a Result.
"""

import logging
import time
from typing import Any, List, Mapping, Optional

from .config import SearchConfig
from .email_analyzer import EmailAnalyzer
from .errors import (
    ExtractionError,
    FetchError,
    IMAPConnectError,
    IMAPSearchError,
    MailboxEmptyError,
    MailNotFoundError,
    QueryError,
)
from .fetch_response import FetchResponse
from .imap_manager import DEFAULT_MAILBOX, IMAPFactory, IMAPManager
from .message import Mail, extract_mail
from .result import Result

logger = logging.getLogger(__name__)

STEP_TYPE = "imap"
DEFAULT_ASSERTIONS = ["result.err ShouldNotExist"]
SEARCHED_MAIL_NOT_FOUND = "searched mail not found"


class EmailProcessor:
    """Search orchestrator for a single step invocation."""

    def __init__(self, config: SearchConfig, imap_factory: Optional[IMAPFactory] = None):
        """Initialize email processor.

        Args:
            config: Decoded step configuration
            imap_factory: Connection class passed to IMAPManager.connect
        """
        self.config = config
        self.imap_factory = imap_factory
        self.analyzer = EmailAnalyzer(config)

    @property
    def mailbox(self) -> str:
        return self.config.mbox or DEFAULT_MAILBOX

    def _connect(self) -> IMAPManager:
        try:
            return IMAPManager.connect(
                self.config.imap_host,
                self.config.imap_port,
                self.config.imap_user,
                self.config.imap_password,
                debug=self.config.imap_debug,
                imap_factory=self.imap_factory,
            )
        except IMAPConnectError as e:
            raise IMAPConnectError(f"error while connecting: {e}") from e

    def find_mail(self) -> Mail:
        """Locate the first message matching every configured pattern.

        The matched message is deleted or moved when configured. The session
        is closed on every exit path.

        Returns:
            The first matching Mail in fetch order

        Raises:
            IMAPSearchError: Subclass describing the failed phase
        """
        self.config.validate()

        with self._connect() as manager:
            try:
                count = manager.query_count(self.mailbox)
            except QueryError as e:
                raise QueryError(f"error while querying mailbox status: {e}") from e

            logger.debug("count messages: %d", count)
            if count == 0:
                raise MailboxEmptyError()

            try:
                responses = manager.fetch_all(self.mailbox, count)
            except FetchError as e:
                raise FetchError(f"error while fetching messages: {e}") from e

            mail = self._first_match(responses)
            self._apply_action(manager, mail)
            return mail

    def _first_match(self, responses: List[FetchResponse]) -> Mail:
        for response in responses:
            try:
                mail = extract_mail(response)
            except ExtractionError as e:
                logger.warning("Cannot extract the content of the mail %r: %s", response, e)
                continue

            if self.analyzer.is_searched(mail):
                return mail

        raise MailNotFoundError()

    def _apply_action(self, manager: IMAPManager, mail: Mail) -> None:
        if self.config.delete_on_success:
            logger.debug("Delete message %d", mail.uid)
            manager.delete_message(mail.uid)
        elif self.config.mbox_on_success:
            logger.debug("Move message %d to %s", mail.uid, self.config.mbox_on_success)
            manager.move_message(mail.uid, self.config.mbox_on_success)

    def run(self) -> Result:
        """Run the search and encode any failure in the result.

        Returns:
            Result with either the matched subject and body or an error text,
            plus the elapsed wall-clock time
        """
        start = time.perf_counter()
        result = Result()

        mail = None
        try:
            mail = self.find_mail()
        except IMAPSearchError as e:
            result.err = str(e)

        if mail is not None:
            result.subject = mail.subject
            result.body = mail.body
        elif not result.err:
            result.err = SEARCHED_MAIL_NOT_FOUND

        result.time_seconds = time.perf_counter() - start
        return result


def zero_value_result() -> Result:
    return Result()


def run_step(step: Mapping[str, Any], imap_factory: Optional[IMAPFactory] = None) -> Result:
    """Decode an untyped step and run it.

    Raises:
        StepDecodeError: If the step configuration cannot be decoded
    """
    config = SearchConfig.from_step(step)
    return EmailProcessor(config, imap_factory).run()
