"""
IMAP Search Package

Finds a mail on an IMAP server from declarative search criteria and
optionally deletes or moves it.
"""

__version__ = "1.0.0"

from .config import ConfigManager, SearchConfig
from .email_analyzer import EmailAnalyzer
from .email_processor import DEFAULT_ASSERTIONS, STEP_TYPE, EmailProcessor, run_step, zero_value_result
from .imap_manager import IMAPManager
from .message import Mail, extract_mail
from .result import Result

__all__ = [
    "ConfigManager",
    "SearchConfig",
    "EmailAnalyzer",
    "EmailProcessor",
    "IMAPManager",
    "Mail",
    "Result",
    "DEFAULT_ASSERTIONS",
    "STEP_TYPE",
    "extract_mail",
    "run_step",
    "zero_value_result",
]
