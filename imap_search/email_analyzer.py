"""
Search matching logic.

Pure functions deciding whether a Mail satisfies the configured patterns,
without any I/O operations.
"""

import re
from typing import List, Tuple

from .config import SearchConfig
from .errors import PatternError
from .message import Mail


class EmailAnalyzer:
    """Evaluates configured search patterns against mails."""

    def __init__(self, config: SearchConfig):
        """Initialize email analyzer.

        Args:
            config: Search configuration holding the four optional patterns
        """
        self.criteria: List[Tuple[str, str]] = [
            ("sender", config.search_from),
            ("recipient", config.search_to),
            ("subject", config.search_subject),
            ("body", config.search_body),
        ]

    @staticmethod
    def pattern_matches(pattern: str, text: str) -> bool:
        """Unanchored regular expression match.

        Raises:
            PatternError: If the pattern does not compile
        """
        try:
            return re.search(pattern, text) is not None
        except re.error as e:
            raise PatternError(f"invalid search pattern {pattern!r}: {e}") from e

    def is_searched(self, mail: Mail) -> bool:
        """Check whether every configured pattern matches its field.

        Patterns are checked in sender, recipient, subject, body order and the
        check stops at the first field that does not match. Empty patterns
        always match.

        Args:
            mail: Mail to evaluate

        Returns:
            True if all configured patterns match

        Raises:
            PatternError: If an evaluated pattern does not compile
        """
        for field, pattern in self.criteria:
            if pattern and not self.pattern_matches(pattern, getattr(mail, field)):
                return False
        return True
