"""Prompt-injection screening for incoming chat messages."""

import re

import structlog

logger = structlog.get_logger(__name__)

INJECTION_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ignore (all )?(the )?previous instructions", re.IGNORECASE),
    re.compile(r"reveal (your )?(api key|password|secret)", re.IGNORECASE),
    re.compile(r"\bsystem prompt\b", re.IGNORECASE),
    re.compile(r"\bexecute\b", re.IGNORECASE),
    re.compile(r"\brun this\b", re.IGNORECASE),
]

_STRIPPED_CHARS = re.compile(r"[`$<>]")


def sanitize_input(message: str) -> str | None:
    """
    Screen a user message before it reaches the engine.

    Returns None when the message matches a known injection phrasing;
    otherwise the message with backticks, dollar signs and angle brackets
    removed.
    """
    for pattern in INJECTION_PATTERNS:
        if pattern.search(message):
            logger.warning("unsafe_input_rejected", pattern=pattern.pattern)
            return None
    return _STRIPPED_CHARS.sub("", message)
