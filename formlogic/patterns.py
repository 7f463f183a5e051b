"""
Regex matching with a hard wall-clock limit.

Patterns come from template authors, so every match runs through the
`regex` engine's native timeout. A timeout or a bad pattern is reported as
"no match" and never propagates.
"""
from __future__ import annotations

import logging
from typing import Optional

import regex

from .config import EngineSettings, get_settings

logger = logging.getLogger(__name__)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^[\+]?[1-9][\d]{0,15}$"
PHONE_SEPARATORS = r"[\s\-\(\)]"


class PatternMatcher:
    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or get_settings()

    @property
    def timeout(self) -> float:
        return self.settings.regex_timeout

    def matches(self, pattern: str, text: str) -> bool:
        try:
            return regex.search(pattern, text, timeout=self.timeout) is not None
        except TimeoutError:
            logger.warning("Pattern match timed out after %sms: %r", self.settings.regex_timeout_ms, pattern)
            return False
        except regex.error as exc:
            logger.warning("Invalid pattern %r: %s", pattern, exc)
            return False

    def is_email(self, text: str) -> bool:
        return self.matches(EMAIL_PATTERN, text)

    def is_phone(self, text: str) -> bool:
        try:
            cleaned = regex.sub(PHONE_SEPARATORS, "", text, timeout=self.timeout)
        except TimeoutError:
            logger.warning("Phone normalisation timed out")
            return False
        return self.matches(PHONE_PATTERN, cleaned)
