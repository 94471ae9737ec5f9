import io
from datetime import date, datetime

import pandas as pd
import pytest
from sqlalchemy import select

from stockroom.app.db.models.models_v1 import Category, Equipment
from stockroom.services.errors import PermissionDenied, UnrecognizedFormat, ValidationError
from stockroom.services.transfer import (
    import_equipment,
    normalize_acquisition_date,
    normalize_header,
    parse_quantity,
    parse_spreadsheet,
    preview_rows,
    resolve_columns,
)

TODAY = date(2025, 7, 10)


def _xlsx(records) -> bytes:
    buffer = io.BytesIO()
    pd.DataFrame(records).to_excel(buffer, index=False, engine="openpyxl")
    return buffer.getvalue()


SHEET = [
    {"Nome": "Dell XPS", "Nº Série": "SN001", "Categoria": "Laptops", "Quantidade": 2, "Data de Aquisição": datetime(2024, 1, 5)},
    {"Nome": "LG 27", "Nº Série": "SN002", "Categoria": "Monitores", "Quantidade": 1, "Data de Aquisição": None},
    {"Nome": None, "Nº Série": "SN003", "Categoria": "Laptops", "Quantidade": 1, "Data de Aquisição": None},
    {"Nome": "Cabo HDMI", "Nº Série": "SN004", "Categoria": None, "Quantidade": None, "Data de Aquisição": "25/12/2023"},
]


# ---------- Colonnes ----------
def test_normalize_header_strips_accents_and_separators():
    assert normalize_header(" Nº Série ") == "no_serie"
    assert normalize_header("Data de Aquisição") == "data_de_aquisicao"
    assert normalize_header("Num.Série") == "num_serie"


def test_resolve_columns_exact_then_substring():
    columns = resolve_columns(["Nome do equipamento", "Num. Série", "categoria", "Quantidade em estoque", "Obs"])

    assert columns.header("name") == "Nome do equipamento"
    assert columns.header("serial_number") == "Num. Série"
    assert columns.header("category") == "categoria"
    assert columns.header("quantity") == "Quantidade em estoque"
    assert columns.header("description") is None


def test_resolve_columns_accepts_english_headers():
    columns = resolve_columns(["name", "serial_number", "category", "qty", "description"])
    assert columns.value({"qty": 3}, "quantity") == 3
    assert columns.value({"qty": float("nan")}, "quantity") is None


def test_resolve_columns_reports_missing_required():
    with pytest.raises(UnrecognizedFormat, match="serial_number"):
        resolve_columns(["Nome", "Categoria", "Quantidade"])


# ---------- Cellules ----------
@pytest.mark.parametrize(
    "raw, expected",
    [(None, 1), ("", 1), (float("nan"), 1), (4, 4), (2.0, 2), ("3", 3), ("2,0", 2), (0, 0)],
)
def test_parse_quantity(raw, expected):
    assert parse_quantity(raw) == expected


@pytest.mark.parametrize("raw", ["-1", "muitos", -5, True, "inf", "1e999", float("inf"), "nan", 2.7, "2,5"])
def test_parse_quantity_rejects(raw):
    with pytest.raises(ValueError):
        parse_quantity(raw)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (datetime(2024, 1, 5, 13, 0), date(2024, 1, 5)),
        (date(2023, 2, 1), date(2023, 2, 1)),
        ("2024-03-09", date(2024, 3, 9)),
        ("25/12/2023", date(2023, 12, 25)),
        (45000, date(2023, 3, 15)),
        ("n/d", TODAY),
        (None, TODAY),
        (-3, TODAY),
    ],
)
def test_normalize_acquisition_date(raw, expected):
    assert normalize_acquisition_date(raw, TODAY) == expected


# ---------- Lecture ----------
def test_parse_spreadsheet_xlsx_and_preview():
    rows = parse_spreadsheet(_xlsx(SHEET), "equipamentos.xlsx")

    assert len(rows) == 4
    assert rows[0]["Nº Série"] == "SN001"
    assert rows[2]["Nome"] is None
    assert len(preview_rows(rows)) == 4
    assert [r["Nome"] for r in preview_rows(rows, 2)] == ["Dell XPS", "LG 27"]


def test_parse_spreadsheet_csv():
    content = "nome,num_serie,categoria,quantidade\nMouse,M-1,Perifericos,3\n".encode("utf-8")
    rows = parse_spreadsheet(content, "lote.csv")
    assert rows == [{"nome": "Mouse", "num_serie": "M-1", "categoria": "Perifericos", "quantidade": "3"}]


@pytest.mark.parametrize(
    "content",
    [b"", b"definitely not a spreadsheet", _xlsx([{"Foo": 1, "Bar": 2}])],
)
def test_parse_spreadsheet_unrecognized(content):
    with pytest.raises(UnrecognizedFormat):
        parse_spreadsheet(content, "x.xlsx")


def test_preview_rejects_negative_limit():
    with pytest.raises(ValidationError):
        preview_rows([], -1)


# ---------- Import ----------
def test_import_is_independent_per_row(db_session, admin):
    rows = parse_spreadsheet(_xlsx(SHEET), "equipamentos.xlsx")

    summary = import_equipment(db_session, admin, rows)

    assert summary.success_count == 3
    assert summary.failure_count == 1
    assert summary.created_count == 3
    assert [(f.row_number, f.reason) for f in summary.failures] == [(4, "Name is required")]

    by_serial = {e.serial_number: e for e in db_session.execute(select(Equipment)).scalars()}
    assert set(by_serial) == {"SN001", "SN002", "SN004"}
    assert by_serial["SN001"].acquisition_date == date(2024, 1, 5)
    assert by_serial["SN004"].quantity == 1
    assert by_serial["SN004"].acquisition_date == date(2023, 12, 25)
    assert by_serial["SN004"].category.name == "Outros"

    # catégories créées à la volée, une seule fois chacune
    names = sorted(c.name for c in db_session.execute(select(Category)).scalars())
    assert names == ["Laptops", "Monitores", "Outros"]


def test_import_updates_existing_serial(db_session, admin, make_category, make_equipment):
    laptops = make_category("laptops")
    make_equipment(laptops, name="Old name", serial_number="SN001", quantity=9)

    rows = [{"nome": "Dell XPS 13", "num_serie": "SN001", "categoria": "LAPTOPS", "quantidade": "4"}]
    summary = import_equipment(db_session, admin, rows)

    assert (summary.created_count, summary.updated_count) == (0, 1)
    equipment = db_session.execute(select(Equipment)).scalar_one()
    assert equipment.name == "Dell XPS 13"
    assert equipment.quantity == 4
    assert equipment.category_id == laptops.id
    assert equipment.updated_at is not None
    assert db_session.query(Category).count() == 1


def test_import_counts_bad_quantity_as_failure(db_session, admin):
    rows = [
        {"nome": "A", "num_serie": "A-1", "categoria": "X", "quantidade": "muitos"},
        {"nome": "B", "num_serie": "", "categoria": "X", "quantidade": "1"},
        {"nome": "C", "num_serie": "C-1", "categoria": "X", "quantidade": "1"},
        {"nome": "D", "num_serie": "D-1", "categoria": "X", "quantidade": "inf"},
        {"nome": "E", "num_serie": "E-1", "categoria": "X", "quantidade": 2.7},
        {"nome": "F", "num_serie": "F-1", "categoria": "X", "quantidade": "1e999"},
        {"nome": "G", "num_serie": "G-1", "categoria": "X", "quantidade": "3"},
    ]
    summary = import_equipment(db_session, admin, rows)

    # une cellule illisible n'interrompt jamais les lignes suivantes
    assert summary.success_count == 2
    assert [f.row_number for f in summary.failures] == [2, 3, 5, 6, 7]
    assert db_session.query(Equipment).count() == 2


def test_import_requires_admin(db_session, user):
    with pytest.raises(PermissionDenied):
        import_equipment(db_session, user, [{"nome": "A", "num_serie": "1", "categoria": "X", "quantidade": 1}])
