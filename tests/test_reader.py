"""Tests for inventory spreadsheet reading."""

from __future__ import annotations

import pytest

from site_audit_workflow.etl.reader import read_csv, read_table, read_xlsx
from site_audit_workflow.exceptions import IngestionError
from tests.conftest import build_csv, build_xlsx


class TestReadXlsx:
    def test_reads_first_sheet(self) -> None:
        content = build_xlsx(["Procesador", "RAM"], [["Core i7", "16 GB"], ["Core i5", 8]])
        table = read_xlsx(content)
        assert table.headers == ["Procesador", "RAM"]
        assert table.row_count == 2
        assert table.rows[1] == {"Procesador": "Core i5", "RAM": 8}

    def test_skips_blank_rows_and_leading_empty_rows(self) -> None:
        content = build_xlsx(["Procesador"], [[None], ["Core i7"], [None], ["Core i5"]])
        table = read_xlsx(content)
        assert [r["Procesador"] for r in table.rows] == ["Core i7", "Core i5"]

    def test_duplicate_headers_are_suffixed(self) -> None:
        table = read_xlsx(build_xlsx(["RAM", "RAM"], [["8", "16"]]))
        assert table.headers == ["RAM", "RAM_2"]
        assert table.rows[0] == {"RAM": "8", "RAM_2": "16"}

    def test_blank_header_cells_dropped(self) -> None:
        content = build_xlsx(["Procesador", None, None], [["Core i7", "x", "y"]])
        table = read_xlsx(content)
        assert table.headers == ["Procesador"]
        assert table.rows[0] == {"Procesador": "Core i7"}

    def test_corrupt_workbook(self) -> None:
        with pytest.raises(IngestionError):
            read_xlsx(b"PK\x03\x04not really a zip")


class TestReadCsv:
    def test_comma(self) -> None:
        table = read_csv(build_csv(["Procesador", "RAM"], [["Core i7", "16 GB"]]))
        assert table.rows == [{"Procesador": "Core i7", "RAM": "16 GB"}]

    def test_semicolon(self) -> None:
        content = build_csv(["Procesador", "RAM", "Disco"], [["Core i7", "16", "SSD"], ["Core i5", "8", "HDD"]], ";")
        table = read_csv(content)
        assert table.headers == ["Procesador", "RAM", "Disco"]
        assert table.rows[1]["Disco"] == "HDD"

    def test_latin1_encoding(self) -> None:
        content = "Atención,Procesador\nRemoto,Core i7\n".encode("cp1252")
        table = read_csv(content)
        assert table.headers == ["Atención", "Procesador"]

    def test_short_rows_padded(self) -> None:
        table = read_csv(b"A,B,C\n1,2\n")
        assert table.rows == [{"A": "1", "B": "2", "C": None}]


class TestReadTable:
    def test_empty(self) -> None:
        with pytest.raises(IngestionError, match="empty"):
            read_table(b"")

    def test_legacy_xls_rejected(self) -> None:
        with pytest.raises(IngestionError, match=".xls"):
            read_table(b"\xd0\xcf\x11\xe0rest-of-file", "inventario.xls")

    def test_dispatch_by_magic(self) -> None:
        table = read_table(build_xlsx(["RAM"], [["8"]]), None)
        assert table.rows == [{"RAM": "8"}]

    def test_dispatch_csv(self) -> None:
        table = read_table(b"RAM\n8\n", "inventario.csv")
        assert table.rows == [{"RAM": "8"}]
