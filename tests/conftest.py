from __future__ import annotations

import asyncio

import pytest

from filetranslate.errors import AuthError, ServerError
from filetranslate.settings import Settings


class EchoTranslator:
    """Returns ``<TARGET>:<text>`` and records every call."""

    def __init__(self, delay: float = 0.0) -> None:
        self.calls: list[dict] = []
        self.delay = delay

    async def translate(self, text, *, target_language, source_language=None, preserve_formatting=True, file_format=None):
        self.calls.append(
            {
                "text": text,
                "target_language": target_language,
                "preserve_formatting": preserve_formatting,
                "file_format": file_format,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if not text.strip():
            return ""
        return f"{target_language.upper()}:{text.strip()}"


class FailingTranslator(EchoTranslator):
    """Raises ``error`` for texts containing ``marker`` (or for every text when no marker)."""

    def __init__(self, error: Exception | None = None, marker: str | None = None) -> None:
        super().__init__()
        self.error = error or ServerError("upstream exploded")
        self.marker = marker

    async def translate(self, text, **kwargs):
        if self.marker is None or self.marker in text:
            self.calls.append({"text": text, **kwargs})
            raise self.error
        return await super().translate(text, **kwargs)


class FlakyTranslator(EchoTranslator):
    """Fails the first ``failures`` calls, then behaves like EchoTranslator."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    async def translate(self, text, **kwargs):
        if self.failures > 0:
            self.failures -= 1
            self.calls.append({"text": text, **kwargs})
            raise ServerError("temporary outage")
        return await super().translate(text, **kwargs)


@pytest.fixture
def settings(tmp_path) -> Settings:
    settings = Settings.for_root(tmp_path / "data", translation_delay_ms=0, dry_run=True)
    settings.ensure_directories()
    return settings


@pytest.fixture
def echo_translator() -> EchoTranslator:
    return EchoTranslator()


@pytest.fixture
def auth_failing_translator() -> FailingTranslator:
    return FailingTranslator(AuthError("bad key"))
