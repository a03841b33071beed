"""
Step result returned by a search run.
"""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class Result:
    """Outcome of one search: error text, matched subject and body, duration."""

    err: str = ""
    subject: str = ""
    body: str = ""
    time_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        return not self.err

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization.

        err is always present; subject, body and timeseconds only when set.
        """
        data: Dict[str, Any] = {"err": self.err}
        if self.subject:
            data["subject"] = self.subject
        if self.body:
            data["body"] = self.body
        if self.time_seconds:
            data["timeseconds"] = self.time_seconds
        return data
