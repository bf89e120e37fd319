"""
Secure logging setup that automatically redacts sensitive information.

The formatter prevents accidental exposure of:
- API keys and tokens
- Bearer credentials
- Passwords

Usage:
    from .secure_logger import setup_logging
    setup_logging(settings.log_dir)
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Pattern

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class SecureFormatter(logging.Formatter):
    """Formatter that redacts sensitive information from log messages."""

    SENSITIVE_PATTERNS: list[tuple[Pattern[str], str]] = [
        # Anthropic keys (sk-ant-...) and other sk- style keys
        (re.compile(r"sk-ant-[a-zA-Z0-9_-]+"), "[REDACTED_API_KEY]"),
        (re.compile(r"\bsk-[a-zA-Z0-9_-]{16,}"), "[REDACTED_API_KEY]"),

        (re.compile(r'["\']?api[_-]?key["\']?\s*[:=]\s*["\']?[a-zA-Z0-9_-]{20,}["\']?', re.IGNORECASE),
         "api_key=[REDACTED]"),

        (re.compile(r"Bearer\s+[a-zA-Z0-9._-]+"), "Bearer [REDACTED_TOKEN]"),

        (re.compile(r'["\']?password["\']?\s*[:=]\s*["\']?[^"\'}\s]+["\']?', re.IGNORECASE),
         "password=[REDACTED]"),
    ]

    def format(self, record: logging.LogRecord) -> str:
        sanitized = super().format(record)
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            sanitized = pattern.sub(replacement, sanitized)
        return sanitized


def setup_logging(log_dir: str | Path | None = None, level: int = logging.INFO) -> Path | None:
    """Configure the root logger to write to the console and, if given, a log file.

    Returns the log file path, or None when only console logging is enabled.
    """
    formatter = SecureFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    # Remove existing handlers to avoid duplicates on reload
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_dir is None:
        return None

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / "backend.log"
    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)
    return log_file
