from __future__ import annotations

import sys
from pathlib import Path

import pytest
from openpyxl import Workbook

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from registry_tools.importer import (
    ImporterError,
    auto_map,
    build_preview,
    detect_delimiter,
    parse_csv_text,
    preview_file,
    read_table,
)

CLOCK = lambda: "2024-01-01T00:00:00.000Z"  # noqa: E731


def test_detect_delimiter_prefers_tab_then_majority() -> None:
    assert detect_delimiter("a\tb,c") == "\t"
    assert detect_delimiter("a;b;c,d") == ";"
    assert detect_delimiter("a,b;c") == ","


def test_parse_csv_text_handles_quotes_and_blank_lines() -> None:
    rows = parse_csv_text('Brand;Model\n\n"Acme; Inc";X200\n')

    assert rows == [["Brand", "Model"], ["Acme; Inc", "X200"]]


def test_auto_map_prefers_exact_headers() -> None:
    mapping = auto_map(["Model Year", "Make", "Model", "Cat.", "Notes"])

    assert mapping == {"Manufacturer": 1, "Model": 2, "Year": 0, "Category": 3}
    assert auto_map(["Notes"])["Model"] == -1


def test_build_preview_skips_incomplete_rows_and_duplicates() -> None:
    rows = [
        ["Manufacturer", "Model", "Year", "Category"],
        ["Acme", "X200", "1998", "Tractors"],
        ["acme", "x200", "1998", "tractors"],
        ["", "Orphan", "", "Tractors"],
        ["Acme", "", "", "Tractors"],
        ["Acme", "Boat", "", "Boats"],
        ["Acme", "Drone", "", "Drones"],
    ]

    preview = build_preview(rows, known_categories=["Tractors", "Mowers"], clock=CLOCK)

    assert preview.total == 6
    assert preview.ready == 3
    assert preview.duplicates == 1
    assert preview.skipped == 2
    assert preview.missing_categories == ["Boats", "Drones"]
    first = preview.items()[0]
    assert first["Key"] == "acme_x200_1998_tractors"
    assert first["Status"] == "Pending"
    assert first["CreatedAt"] == "2024-01-01T00:00:00.000Z"


def test_build_preview_accepts_column_overrides() -> None:
    rows = [["Vendor", "Name"], ["Acme", "X200"]]

    preview = build_preview(rows, overrides={"Manufacturer": "vendor", "Model": 1}, clock=CLOCK)

    assert preview.ready == 1
    assert preview.records[0].manufacturer == "Acme"
    assert preview.missing_categories == []

    with pytest.raises(ImporterError):
        build_preview(rows, overrides={"Colour": "Vendor"})
    with pytest.raises(ImporterError):
        build_preview(rows, overrides={"Model": "Absent"})


def test_read_table_csv_file(tmp_path: Path) -> None:
    path = tmp_path / "models.csv"
    path.write_text("\ufeffbrand,model_name,yr\nAcme,X200,1998\n", encoding="utf-8")

    preview = preview_file(path)

    assert preview.mapping["Manufacturer"] == 0
    assert preview.mapping["Model"] == 1
    assert preview.records[0].year == "1998"


def test_read_table_xlsx_first_sheet(tmp_path: Path) -> None:
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["Manufacturer", "Model", "Year", "Category"])
    sheet.append(["Acme", "X200", 1998, "Tractors"])
    sheet.append([None, None, None, None])
    sheet.append(["Acme", "M1", 2001.0, "Mowers"])
    workbook.create_sheet("Ignored").append(["Other", "Data"])
    path = tmp_path / "models.xlsx"
    workbook.save(path)

    rows = read_table(path)

    assert rows == [
        ["Manufacturer", "Model", "Year", "Category"],
        ["Acme", "X200", "1998", "Tractors"],
        ["Acme", "M1", "2001", "Mowers"],
    ]


def test_read_table_rejects_corrupt_xlsx(tmp_path: Path) -> None:
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"not a zip file")

    with pytest.raises(ImporterError):
        read_table(path)


def test_empty_file_yields_empty_preview(tmp_path: Path) -> None:
    path = tmp_path / "empty.csv"
    path.write_text("", encoding="utf-8")

    preview = preview_file(path)

    assert preview.total == 0
    assert preview.items() == []
