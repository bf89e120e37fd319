from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import UnsupportedFormatError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FileFormat(str, Enum):
    TXT = "txt"
    MARKDOWN = "md"
    WORD = "docx"
    CSV = "csv"
    EXCEL = "xlsx"
    PDF = "pdf"
    SRT = "srt"
    JSON = "json"

    @classmethod
    def from_filename(cls, filename: str) -> "FileFormat":
        extension = Path(filename).suffix.lower().lstrip(".")
        if extension == "markdown":
            extension = "md"
        try:
            return cls(extension)
        except ValueError:
            supported = ", ".join(member.value for member in cls)
            raise UnsupportedFormatError(
                f"Unsupported file type: {extension or '(none)'}; supported types: {supported}"
            ) from None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileInfo(_CamelModel):
    original_name: str
    stored_path: str
    size: int
    mime_type: str = "application/octet-stream"
    extension: str
    format: FileFormat


class TranslationOptions(_CamelModel):
    target_language: str
    source_language: Optional[str] = None
    preserve_formatting: bool = True


class Task(_CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    file_info: FileInfo
    options: TranslationOptions
    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    output_path: Optional[str] = None
    error: Optional[str] = None
    retry_count: int = 0
    owner_token: str = "unknown"

    def public_dict(self) -> dict[str, Any]:
        """Wire representation; the owner token stays server side."""
        return self.model_dump(mode="json", by_alias=True, exclude={"owner_token"})


class BatchGroup(_CamelModel):
    batch_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    task_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class UnitStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class TranslationUnit:
    """One independently translatable piece of a document.

    ``position`` locates the unit inside the decoded content: a chunk index,
    a ``(sheet, row, column)`` tuple, a subtitle index or a JSON path tuple.
    """

    position: Any
    source_text: str
    translated_text: str | None = None
    status: UnitStatus = UnitStatus.PENDING

    @property
    def result(self) -> str:
        return self.translated_text if self.translated_text is not None else self.source_text


class TaskIdsRequest(_CamelModel):
    task_ids: list[str] = Field(default_factory=list)
