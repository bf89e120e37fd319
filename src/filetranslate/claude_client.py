from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import anthropic
from anthropic import AsyncAnthropic

from .errors import AuthError, RateLimitError, ResponseFormatError, ServerError
from .models import FileFormat
from .prompts import build_prompts
from .settings import DEFAULT_BASE_URL, DEFAULT_MODEL, Settings

logger = logging.getLogger(__name__)


class Translator(Protocol):
    async def translate(
        self,
        text: str,
        *,
        target_language: str,
        source_language: str | None = None,
        preserve_formatting: bool = True,
        file_format: FileFormat | None = None,
    ) -> str: ...


def classify_api_error(exc: Exception) -> Exception:
    """Map an anthropic SDK exception onto the service error taxonomy."""
    if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return AuthError(f"Completion API authentication failed, check the API key: {exc}")
    if isinstance(exc, anthropic.RateLimitError):
        return RateLimitError(f"Completion API rate limit or quota exceeded: {exc}")
    if isinstance(exc, anthropic.APIStatusError):
        if exc.status_code >= 500:
            return ServerError(f"Completion API server error ({exc.status_code}): {exc}")
        return ResponseFormatError(f"Completion API rejected the request ({exc.status_code}): {exc}")
    if isinstance(exc, anthropic.APIResponseValidationError):
        return ResponseFormatError(f"Completion API returned a malformed reply: {exc}")
    if isinstance(exc, anthropic.APIError):
        # connection errors and timeouts
        return ServerError(f"Completion API unreachable: {exc}")
    return exc


@dataclass
class ClaudeTranslator:
    api_key: str
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    max_tokens: int = 4000
    temperature: float = 0.3
    dry_run: bool = False
    _client: AsyncAnthropic | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.dry_run:
            return
        if not self.api_key:
            # the service still starts; every translation fails with AuthError
            logger.warning("ANTHROPIC_API_KEY is not set and dry_run is disabled")
            return
        self._client = AsyncAnthropic(api_key=self.api_key, base_url=self.base_url)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClaudeTranslator":
        return cls(
            api_key=settings.anthropic_api_key,
            model=settings.model,
            base_url=settings.anthropic_base_url,
            dry_run=settings.dry_run,
        )

    async def translate(
        self,
        text: str,
        *,
        target_language: str,
        source_language: str | None = None,
        preserve_formatting: bool = True,
        file_format: FileFormat | None = None,
    ) -> str:
        if not text or not text.strip():
            return ""
        if self.dry_run:
            return f"[{target_language} draft] {text}"
        if self._client is None:
            raise AuthError("ANTHROPIC_API_KEY is required unless dry_run is enabled.")

        system_prompt, user_prompt = build_prompts(
            text,
            target_language=target_language,
            source_language=source_language,
            preserve_formatting=preserve_formatting,
            file_format=file_format,
        )
        logger.info(f"Calling completion API ({len(text)} chars -> {target_language})")
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.APIError as exc:
            mapped = classify_api_error(exc)
            logger.error(f"Completion API call failed: {type(mapped).__name__}: {mapped}")
            raise mapped from exc

        blocks = getattr(response, "content", None) or []
        translated = "".join(getattr(block, "text", "") for block in blocks if getattr(block, "type", None) == "text")
        if not translated.strip():
            raise ResponseFormatError("Completion API returned an empty reply")
        logger.info(f"Translation done ({len(text)} chars -> {len(translated)} chars)")
        return translated

    async def check_connection(self) -> bool:
        """Probe the API once at startup; never raises."""
        if self.dry_run:
            logger.info("Dry-run translator, skipping API connection check")
            return True
        if self._client is None:
            logger.warning("No API key configured, translations will fail until one is set")
            return False
        try:
            page = await self._client.models.list(limit=20)
        except anthropic.APIError as exc:
            logger.warning(f"Completion API connection check failed: {classify_api_error(exc)}")
            return False
        available = [model.id for model in page.data]
        if self.model not in available:
            logger.warning(f"Configured model {self.model} not in the first listed models: {', '.join(available)[:200]}")
        else:
            logger.info(f"Completion API reachable, model {self.model} available")
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
