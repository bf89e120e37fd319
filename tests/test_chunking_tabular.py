from __future__ import annotations

import io

from openpyxl import Workbook, load_workbook

from filetranslate.chunking import get_handler
from filetranslate.chunking.detect import is_free_text, normalize_text, should_skip
from filetranslate.chunking.tabular import translatable_columns
from filetranslate.models import FileFormat

CSV_TEXT = (
    "id,name,description,price,created\n"
    "1,Red apple,A sweet red fruit,1.50,2024-01-02\n"
    "2,Green pear,A juicy green fruit,2.00,2024-01-03\n"
    "3,Red apple,A sweet  red fruit,1.50,2024-01-04\n"
)


def test_free_text_detection():
    assert is_free_text("Hello world")
    assert not is_free_text("12.5")
    assert not is_free_text("1,234")
    assert not is_free_text("2024-01-02")
    assert not is_free_text("=SUM(A1:A3)")
    assert not is_free_text("x")
    assert not is_free_text(42)


def test_skip_patterns():
    assert should_skip("https://example.com/page")
    assert should_skip("someone@example.com")
    assert should_skip("550e8400-e29b-41d4-a716-446655440000")
    assert should_skip("{\"a\": 1}")
    assert not should_skip("Plain words")


def test_normalize_text_collapses_whitespace_and_case():
    assert normalize_text("  A Sweet\n red  fruit ") == "a sweet red fruit"


def test_translatable_columns_uses_majority_of_free_text():
    rows = [["1", "apple", "x1"], ["2", "pear", "2.0"], ["3", "plum", "3.0"]]
    assert translatable_columns(rows, 3) == [1]


def test_csv_chunks_only_text_columns_and_skips_header():
    handler = get_handler(FileFormat.CSV)
    table = handler.decode(CSV_TEXT.encode("utf-8"))
    units = handler.chunk(table)
    positions = {unit.position for unit in units}
    assert positions == {(1, 1), (1, 2), (2, 1), (2, 2), (3, 1), (3, 2)}
    assert all(unit.position[0] != 0 for unit in units)


def test_csv_identity_round_trip():
    handler = get_handler(FileFormat.CSV)
    table = handler.decode(CSV_TEXT.encode("utf-8"))
    assert handler.encode(handler.reassemble(table, handler.chunk(table))).decode("utf-8") == CSV_TEXT


def test_csv_reassembly_writes_translations_in_place():
    handler = get_handler(FileFormat.CSV)
    table = handler.decode(CSV_TEXT.encode("utf-8"))
    units = handler.chunk(table)
    for unit in units:
        unit.translated_text = unit.source_text.upper()
    output = handler.encode(handler.reassemble(table, units)).decode("utf-8")
    lines = output.splitlines()
    assert lines[0] == "id,name,description,price,created"
    assert lines[1] == "1,RED APPLE,A SWEET RED FRUIT,1.50,2024-01-02"


def test_csv_with_header_only_has_no_units():
    handler = get_handler(FileFormat.CSV)
    assert handler.chunk(handler.decode(b"a,b,c\n")) == []


def test_csv_dedupe_key_is_normalized():
    handler = get_handler(FileFormat.CSV)
    key = handler.dedupe_key()
    assert key("A sweet red fruit") == key("a  SWEET red fruit ")


def _workbook_bytes() -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Products"
    sheet.append(["Name", "Qty", "Note"])
    sheet.append(["Chair", 4, "Wooden chair"])
    sheet.append(["Table", 1, "Oak table"])
    empty = workbook.create_sheet("Empty")
    empty.append(["Only header"])
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def test_excel_units_cover_text_cells_of_every_sheet():
    handler = get_handler(FileFormat.EXCEL)
    workbook = handler.decode(_workbook_bytes())
    units = handler.chunk(workbook)
    assert {unit.position for unit in units} == {
        ("Products", 2, 1),
        ("Products", 3, 1),
        ("Products", 2, 3),
        ("Products", 3, 3),
    }


def test_excel_reassembly_keeps_numbers_and_header():
    handler = get_handler(FileFormat.EXCEL)
    workbook = handler.decode(_workbook_bytes())
    units = handler.chunk(workbook)
    for unit in units:
        unit.translated_text = f"<{unit.source_text}>"
    data = handler.encode(handler.reassemble(workbook, units))

    sheet = load_workbook(io.BytesIO(data))["Products"]
    assert [cell.value for cell in sheet[1]] == ["Name", "Qty", "Note"]
    assert [cell.value for cell in sheet[2]] == ["<Chair>", 4, "<Wooden chair>"]
