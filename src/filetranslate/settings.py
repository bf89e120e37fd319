from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_MODEL = "claude-3-5-haiku-latest"
DEFAULT_BASE_URL = "https://api.anthropic.com"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class Settings:
    anthropic_api_key: str
    anthropic_base_url: str
    model: str
    port: int
    app_env: str
    max_file_size_mb: int
    data_root: Path
    upload_dir: Path
    temp_dir: Path
    output_dir: Path
    log_dir: Path
    max_concurrent_tasks: int = 3
    max_retry_count: int = 3
    max_concurrent_translations: int = 5
    translation_delay_ms: int = 500
    task_expiry_hours: int = 72
    cleanup_cron: str = "0 0 * * *"
    default_target_lang: str = "Chinese"
    dry_run: bool = False

    @property
    def tasks_dir(self) -> Path:
        return self.data_root / "tasks"

    @property
    def max_file_size(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def ensure_directories(self) -> None:
        for path in (self.data_root, self.tasks_dir, self.upload_dir, self.temp_dir, self.output_dir):
            path.mkdir(parents=True, exist_ok=True)

    @classmethod
    def for_root(cls, data_root: str | Path, **overrides) -> "Settings":
        """Settings with every directory under ``data_root``; used by the CLI and tests."""
        root = Path(data_root).resolve()
        values = dict(
            anthropic_api_key="",
            anthropic_base_url=DEFAULT_BASE_URL,
            model=DEFAULT_MODEL,
            port=3000,
            app_env="development",
            max_file_size_mb=10,
            data_root=root,
            upload_dir=root / "uploads",
            temp_dir=root / "temp",
            output_dir=root / "outputs",
            log_dir=root / "logs",
        )
        values.update(overrides)
        return cls(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_root = Path(os.getenv("DATA_ROOT", "./data")).resolve()

    def _dir(name: str, default: str) -> Path:
        raw = os.getenv(name, "").strip()
        return Path(raw).resolve() if raw else data_root / default

    settings = Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", "").strip(),
        anthropic_base_url=os.getenv("ANTHROPIC_BASE_URL", DEFAULT_BASE_URL).strip() or DEFAULT_BASE_URL,
        model=os.getenv("ANTHROPIC_MODEL", DEFAULT_MODEL).strip() or DEFAULT_MODEL,
        port=_int_env("PORT", 3000),
        app_env=os.getenv("APP_ENV", "development").strip().lower() or "development",
        max_file_size_mb=_int_env("MAX_FILE_SIZE", 10),
        data_root=data_root,
        upload_dir=_dir("UPLOAD_DIR", "uploads"),
        temp_dir=_dir("TEMP_DIR", "temp"),
        output_dir=_dir("OUTPUT_DIR", "outputs"),
        log_dir=_dir("LOG_DIR", "logs"),
        max_concurrent_tasks=_int_env("MAX_CONCURRENT_TASKS", 3),
        max_retry_count=_int_env("MAX_RETRY_COUNT", 3),
        max_concurrent_translations=_int_env("MAX_CONCURRENT_TRANSLATIONS", 5),
        translation_delay_ms=_int_env("TRANSLATION_DELAY_MS", 500),
        task_expiry_hours=_int_env("TASK_EXPIRY_HOURS", 72),
        cleanup_cron=os.getenv("CLEANUP_CRON", "0 0 * * *").strip() or "0 0 * * *",
        default_target_lang=os.getenv("DEFAULT_TARGET_LANG", "Chinese").strip() or "Chinese",
        dry_run=_bool_env("DRY_RUN"),
    )
    if not settings.anthropic_base_url.startswith("http"):
        raise ValueError(f"ANTHROPIC_BASE_URL must start with http or https, got {settings.anthropic_base_url!r}")
    return settings
