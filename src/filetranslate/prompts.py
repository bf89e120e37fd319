from __future__ import annotations

from dataclasses import dataclass

from .models import FileFormat

AUTO_DETECT = "the detected source language"

SYSTEM_PROMPT = """You are a professional document translator.
Translate the text provided by the user from {source_language} into {target_language}.
The translation must be accurate and idiomatic and keep the style and meaning of the original.
Return ONLY the translated text, without commentary."""

PRESERVE_FORMATTING_HINT = ", keeping the original formatting, paragraphs and punctuation"


@dataclass(slots=True, frozen=True)
class PromptTemplate:
    name: str
    content: str
    description: str = ""


TRANSLATION_PROMPTS: dict[FileFormat, PromptTemplate] = {
    FileFormat.TXT: PromptTemplate(
        "text_translation",
        "Translate the following text into {target_language}{preserve_formatting}:\n\n{text}",
        "Plain text",
    ),
    FileFormat.MARKDOWN: PromptTemplate(
        "markdown_translation",
        "Translate the following Markdown into {target_language}. Keep all Markdown syntax, "
        "code blocks and links unchanged:\n\n{text}",
        "Markdown documents",
    ),
    FileFormat.WORD: PromptTemplate(
        "word_translation",
        "Translate the following Word document content into {target_language}{preserve_formatting}:\n\n{text}",
        "Word documents",
    ),
    FileFormat.CSV: PromptTemplate(
        "csv_translation",
        "Translate the following CSV cell into {target_language}. Keep numbers, dates and IDs unchanged:\n\n{text}",
        "CSV cells",
    ),
    FileFormat.EXCEL: PromptTemplate(
        "excel_translation",
        "Translate the following Excel cell into {target_language}. Keep numbers, dates and IDs unchanged:\n\n{text}",
        "Excel cells",
    ),
    FileFormat.PDF: PromptTemplate(
        "pdf_translation",
        "Translate the following PDF text into {target_language}{preserve_formatting}:\n\n{text}",
        "PDF text",
    ),
    FileFormat.SRT: PromptTemplate(
        "srt_translation",
        "Translate the following subtitle into {target_language}. Keep it concise and suitable for "
        "on-screen display, and keep the same number of lines:\n\n{text}",
        "SRT subtitle blocks",
    ),
    FileFormat.JSON: PromptTemplate(
        "json_translation",
        "Translate the following JSON string value into {target_language}. Translate only the text, "
        "never keys or JSON structure:\n\n{text}",
        "JSON string values",
    ),
}

GENERIC_PROMPT = PromptTemplate(
    "generic_translation",
    "Translate the following {source_clause}text into {target_language}{preserve_formatting}:\n\n{text}",
    "Used when no file format is given",
)


def build_prompts(
    text: str,
    *,
    target_language: str,
    source_language: str | None = None,
    preserve_formatting: bool = True,
    file_format: FileFormat | None = None,
) -> tuple[str, str]:
    """Return the ``(system, user)`` prompt pair for a unit of text.

    The pair depends only on the arguments, so the same format always selects
    the same template.
    """
    system = SYSTEM_PROMPT.format(
        source_language=source_language or AUTO_DETECT,
        target_language=target_language,
    )
    template = TRANSLATION_PROMPTS.get(file_format) if file_format is not None else None
    if template is None:
        template = GENERIC_PROMPT
    user = template.content.format(
        target_language=target_language,
        preserve_formatting=PRESERVE_FORMATTING_HINT if preserve_formatting else "",
        source_clause=f"{source_language} " if source_language else "",
        text=text,
    )
    return system, user


def list_templates() -> dict[str, list[dict[str, str]]]:
    translation = [
        {"format": fmt.value, "name": t.name, "content": t.content, "description": t.description}
        for fmt, t in TRANSLATION_PROMPTS.items()
    ]
    general = [
        {"name": "system_translation", "content": SYSTEM_PROMPT, "description": "System prompt"},
        {"name": GENERIC_PROMPT.name, "content": GENERIC_PROMPT.content, "description": GENERIC_PROMPT.description},
    ]
    return {"translation": translation, "general": general}
