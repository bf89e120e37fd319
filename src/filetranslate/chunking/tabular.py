"""Cell-level chunking for CSV files and Excel workbooks.

Only columns that mostly hold free text are translated. The first row is a
header and is never sent to the translator.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from openpyxl import Workbook, load_workbook

from ..models import FileFormat, TranslationUnit
from .base import FormatHandler
from .detect import is_free_text, normalize_text

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 10
FREE_TEXT_RATIO = 0.5


def translatable_columns(rows: Sequence[Sequence[Any]], column_count: int) -> list[int]:
    """Indexes of columns whose sampled non-empty cells are mostly free text."""
    sample = rows[:SAMPLE_ROWS]
    columns: list[int] = []
    for col in range(column_count):
        values = [row[col] for row in sample if col < len(row)]
        non_empty = [v for v in values if v is not None and str(v).strip() != ""]
        if not non_empty:
            continue
        free_text = sum(1 for v in non_empty if is_free_text(v))
        if free_text / len(non_empty) > FREE_TEXT_RATIO:
            columns.append(col)
    return columns


class _TabularHandler(FormatHandler):
    sequential = False
    preserve_formatting = False

    def dedupe_key(self) -> Callable[[str], Any]:
        return normalize_text


@dataclass(slots=True)
class CsvTable:
    rows: list[list[str]]
    line_terminator: str = "\n"
    trailing_newline: bool = True
    delimiter: str = ","


class CsvHandler(_TabularHandler):
    format = FileFormat.CSV
    output_suffix = ".csv"

    def decode(self, data: bytes) -> CsvTable:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError:
            text = data.decode("gbk", errors="replace")
        terminator = "\r\n" if "\r\n" in text else "\n"
        rows = list(csv.reader(io.StringIO(text, newline="")))
        return CsvTable(rows=rows, line_terminator=terminator, trailing_newline=text.endswith(("\n", "\r")))

    def encode(self, content: CsvTable) -> bytes:
        buffer = io.StringIO(newline="")
        writer = csv.writer(buffer, delimiter=content.delimiter, lineterminator=content.line_terminator)
        writer.writerows(content.rows)
        text = buffer.getvalue()
        if not content.trailing_newline and text.endswith(content.line_terminator):
            text = text[: -len(content.line_terminator)]
        return text.encode("utf-8")

    def chunk(self, content: CsvTable) -> list[TranslationUnit]:
        if len(content.rows) < 2:
            return []
        header, body = content.rows[0], content.rows[1:]
        column_count = max(len(header), *(len(row) for row in body))
        columns = translatable_columns(body, column_count)
        logger.info(f"CSV: {len(body)} rows, {column_count} columns, translating columns {columns}")
        units: list[TranslationUnit] = []
        for row_index, row in enumerate(body, start=1):
            for col in columns:
                if col < len(row) and is_free_text(row[col], min_length=1):
                    units.append(TranslationUnit(position=(row_index, col), source_text=row[col]))
        return units

    def reassemble(self, content: CsvTable, units: Sequence[TranslationUnit]) -> CsvTable:
        rows = [list(row) for row in content.rows]
        for unit in units:
            row_index, col = unit.position
            rows[row_index][col] = unit.result
        return CsvTable(rows, content.line_terminator, content.trailing_newline, content.delimiter)


class ExcelHandler(_TabularHandler):
    format = FileFormat.EXCEL
    output_suffix = ".xlsx"

    def decode(self, data: bytes) -> Workbook:
        return load_workbook(io.BytesIO(data))

    def encode(self, content: Workbook) -> bytes:
        buffer = io.BytesIO()
        content.save(buffer)
        return buffer.getvalue()

    def chunk(self, content: Workbook) -> list[TranslationUnit]:
        units: list[TranslationUnit] = []
        for sheet in content.worksheets:
            values = [list(row) for row in sheet.iter_rows(values_only=True)]
            if len(values) < 2:
                logger.info(f'Sheet "{sheet.title}" has no data rows, skipping')
                continue
            body = values[1:]
            columns = translatable_columns(body, sheet.max_column)
            logger.info(f'Sheet "{sheet.title}": {len(body)} rows, translating columns {columns}')
            for row_offset, row in enumerate(body):
                for col in columns:
                    value = row[col] if col < len(row) else None
                    if is_free_text(value, min_length=1):
                        # openpyxl coordinates are 1-based; row 1 is the header
                        units.append(TranslationUnit(position=(sheet.title, row_offset + 2, col + 1), source_text=value))
        return units

    def reassemble(self, content: Workbook, units: Sequence[TranslationUnit]) -> Workbook:
        for unit in units:
            title, row, col = unit.position
            content[title].cell(row=row, column=col).value = unit.result
        return content
