"""
CSV import/export of closings and products.

Files follow the spreadsheet convention used by the stores: ``;`` as column
separator, Brazilian numbers (``1.234,56``) and a UTF-8 byte-order mark so
Excel opens accents correctly. Imports never fail as a whole because of a bad
row: each row is validated on its own and the problems are returned as a
list of ``"Linha N: ..."`` messages next to the rows that were accepted.
"""
import csv
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from io import BytesIO, StringIO
from typing import Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

from closerflow.core.money import ZERO, format_brl_number, parse_brl_number, parse_closing_date, to_amount

BOM = "\ufeff"

CLOSING_EXPORT_HEADERS = [
    "Data", "Código Loja", "Loja", "Valor Esperado", "Valor Contado", "Diferença", "Status", "Observações",
]
CLOSING_TEMPLATE_HEADERS = ["Data", "Código Loja", "Valor Esperado", "Valor Contado", "Observações"]
PRODUCT_EXPORT_HEADERS = ["Nome", "Tipo", "Loja", "Quantidade", "Valor Unitário", "Valor Total"]
PRODUCT_TEMPLATE_HEADERS = ["Nome", "Tipo", "Loja (Código)", "Quantidade", "Valor Unitário"]

# Normalized header -> field. Lets an exported file (extra columns) be re-imported.
CLOSING_COLUMN_ALIASES = {
    "data": "date",
    "date": "date",
    "codigo loja": "store_code",
    "cod loja": "store_code",
    "loja (codigo)": "store_code",
    "store code": "store_code",
    "valor esperado": "expected_value",
    "esperado": "expected_value",
    "expected value": "expected_value",
    "valor contado": "counted_value",
    "contado": "counted_value",
    "counted value": "counted_value",
    "observacoes": "observations",
    "observacao": "observations",
    "obs": "observations",
    "observations": "observations",
}
CLOSING_POSITIONAL = ["date", "store_code", "expected_value", "counted_value", "observations"]
CLOSING_REQUIRED = ["date", "store_code", "expected_value", "counted_value"]


@dataclass
class ClosingRow:
    line: int
    date: date
    store_code: str
    store_id: int
    expected_value: Decimal
    counted_value: Decimal
    observations: Optional[str] = None


@dataclass
class ProductRow:
    line: int
    name: str
    type: str
    store_id: int
    quantity: int
    unit_value: Decimal


@dataclass
class ParseResult:
    rows: list = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    total_rows: int = 0


def decode_upload(content: Union[bytes, str]) -> str:
    if isinstance(content, str):
        return content.lstrip(BOM)
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Files saved by Excel on Windows
        return content.decode("cp1252")


def _normalize_header(value: str) -> str:
    text = unicodedata.normalize("NFKD", str(value)).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"\s+", " ", text.strip().strip('"').lower())


def _overlong_rows(text: str, sep: str, width: int) -> List[Tuple[int, int]]:
    """(line, cell count) of the data rows wider than the header, numbered like the row errors."""
    records = [record for record in csv.reader(StringIO(text), delimiter=sep) if record]
    return [(position + 2, len(record)) for position, record in enumerate(records[1:]) if len(record) > width]


def _read_frame(text: str, sep: str, errors: List[str]) -> pd.DataFrame:
    """Read every cell as text. Rows with extra cells are truncated and reported."""
    try:
        header = pd.read_csv(StringIO(text), sep=sep, nrows=0, engine="python")
    except pd.errors.EmptyDataError:
        return pd.DataFrame()
    width = len(header.columns)

    for line, count in _overlong_rows(text, sep, width):
        errors.append(f"Linha {line}: {count} colunas (esperado {width}); colunas extras ignoradas")

    def truncate(bad_line: List[str]) -> List[str]:
        return bad_line[:width]

    frame = pd.read_csv(
        StringIO(text),
        sep=sep,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        engine="python",
        on_bad_lines=truncate,
    )
    return frame.fillna("")


def _closing_columns(frame: pd.DataFrame) -> Dict[str, str]:
    by_header: Dict[str, str] = {}
    for column in frame.columns:
        target = CLOSING_COLUMN_ALIASES.get(_normalize_header(column))
        if target and target not in by_header:
            by_header[target] = column
    if all(name in by_header for name in CLOSING_REQUIRED):
        return by_header
    return {name: column for name, column in zip(CLOSING_POSITIONAL, frame.columns)}


def _cell(row: pd.Series, column: Optional[str]) -> str:
    if column is None:
        return ""
    return str(row[column]).strip()


def parse_closings_csv(
    content: Union[bytes, str],
    stores_by_code: Dict[str, object],
    ambiguous_codes: Iterable[str] = (),
) -> ParseResult:
    """
    Parse ``Data; Código Loja; Valor Esperado; Valor Contado; Observações``.

    ``stores_by_code`` maps store codes to store objects (anything with ``id``).
    Rows whose code is in ``ambiguous_codes`` (the same code in several
    organizations) are rejected rather than assigned to one of them.
    """
    ambiguous = set(ambiguous_codes)
    result = ParseResult()
    text = decode_upload(content)
    frame = _read_frame(text, ";", result.errors)
    if frame.empty:
        return result

    columns = _closing_columns(frame)
    result.total_rows = len(frame)
    for position, (_, row) in enumerate(frame.iterrows()):
        line = position + 2
        if any(not _cell(row, columns.get(name)) for name in CLOSING_REQUIRED):
            result.errors.append(f"Linha {line}: Número insuficiente de colunas ou campos obrigatórios vazios")
            continue

        date_text = _cell(row, columns["date"])
        closing_date = parse_closing_date(date_text)
        if closing_date is None:
            result.errors.append(f'Linha {line}: Data inválida "{date_text}". Use formato DD/MM/YYYY')
            continue

        store_code = _cell(row, columns["store_code"])
        if store_code in ambiguous:
            result.errors.append(f'Linha {line}: Código de loja "{store_code}" ambíguo')
            continue
        store = stores_by_code.get(store_code)
        if store is None:
            result.errors.append(f'Linha {line}: Código de loja "{store_code}" não encontrado')
            continue

        expected = parse_brl_number(_cell(row, columns["expected_value"]))
        counted = parse_brl_number(_cell(row, columns["counted_value"]))
        if expected is None or counted is None:
            result.errors.append(f"Linha {line}: Valores numéricos inválidos")
            continue

        result.rows.append(
            ClosingRow(
                line=line,
                date=closing_date,
                store_code=store_code,
                store_id=store.id,
                expected_value=to_amount(expected),
                counted_value=to_amount(counted),
                observations=_cell(row, columns.get("observations")) or None,
            )
        )
    return result


def _find_store(stores: Iterable, reference: str):
    wanted = reference.strip().lower()
    for store in stores:
        if store.code.lower() == wanted or store.name.lower() == wanted:
            return store
    return None


def parse_products_csv(content: Union[bytes, str], stores: List) -> ParseResult:
    """Parse ``Nome; Tipo; Loja (Código); Quantidade; Valor Unitário`` (``;`` or ``,`` separated)."""
    result = ParseResult()
    text = decode_upload(content)
    first_line = next((line for line in text.splitlines() if line.strip()), "")
    sep = ";" if ";" in first_line else ","
    frame = _read_frame(text, sep, result.errors)
    if frame.empty:
        return result

    result.total_rows = len(frame)
    if len(frame.columns) < 5:
        result.errors.append("Arquivo com colunas insuficientes: Nome, Tipo, Loja, Quantidade, Valor Unitário")
        return result

    name_col, type_col, store_col, quantity_col, value_col = list(frame.columns)[:5]
    for position, (_, row) in enumerate(frame.iterrows()):
        line = position + 2
        name = _cell(row, name_col)
        product_type = _cell(row, type_col)
        store_ref = _cell(row, store_col)
        if not name or not product_type or not store_ref:
            result.errors.append(f"Linha {line}: dados obrigatórios vazios ({name or 'sem nome'})")
            continue

        store = _find_store(stores, store_ref)
        if store is None:
            result.errors.append(f'Linha {line}: Loja "{store_ref}" não encontrada')
            continue

        digits = re.sub(r"\D", "", _cell(row, quantity_col))
        unit_value = parse_brl_number(_cell(row, value_col))
        result.rows.append(
            ProductRow(
                line=line,
                name=name,
                type=product_type,
                store_id=store.id,
                quantity=int(digits) if digits else 0,
                unit_value=to_amount(unit_value) if unit_value is not None else ZERO,
            )
        )
    return result


def _to_csv(headers: List[str], rows: List[List[str]]) -> str:
    frame = pd.DataFrame(rows, columns=headers)
    body = frame.to_csv(sep=";", index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
    return BOM + body


def closings_to_csv(closings: Iterable) -> str:
    rows = [
        [
            closing.date.isoformat(),
            closing.store_code or "",
            closing.store_name or "",
            format_brl_number(closing.expected_value),
            format_brl_number(closing.counted_value),
            format_brl_number(closing.difference),
            closing.status,
            closing.observations or "",
        ]
        for closing in closings
    ]
    return _to_csv(CLOSING_EXPORT_HEADERS, rows)


def closings_template() -> str:
    return _to_csv(CLOSING_TEMPLATE_HEADERS, [["29/12/2024", "JC001", "5000,00", "4980,50", "Exemplo de observação"]])


def products_to_csv(products: Iterable) -> str:
    rows = [
        [
            product.name,
            product.type,
            product.store.name if product.store else "-",
            str(product.quantity),
            format_brl_number(product.unit_value),
            format_brl_number(product.total_value),
        ]
        for product in products
    ]
    return _to_csv(PRODUCT_EXPORT_HEADERS, rows)


def products_template() -> str:
    return _to_csv(PRODUCT_TEMPLATE_HEADERS, [["Produto Exemplo", "Categoria A", "LOJA001", "10", "99,90"]])


def closings_to_xlsx(closings: Iterable) -> BytesIO:
    """Spreadsheet report with real numeric cells."""
    data = [
        {
            "Data": closing.date,
            "Código Loja": closing.store_code or "",
            "Loja": closing.store_name or "",
            "Valor Esperado": float(to_amount(closing.expected_value)),
            "Valor Contado": float(to_amount(closing.counted_value)),
            "Diferença": float(to_amount(closing.difference)),
            "Status": closing.status,
            "Registrado por": closing.created_by_name or "",
            "Aprovado por": closing.validated_by_name or "",
            "Observações": closing.observations or "",
        }
        for closing in closings
    ]
    frame = pd.DataFrame(data, columns=[
        "Data", "Código Loja", "Loja", "Valor Esperado", "Valor Contado", "Diferença",
        "Status", "Registrado por", "Aprovado por", "Observações",
    ])

    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        frame.to_excel(writer, index=False, sheet_name="Fechamentos")
        worksheet = writer.sheets["Fechamentos"]
        for column in worksheet.columns:
            longest = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
            worksheet.column_dimensions[column[0].column_letter].width = min(longest + 2, 50)
    output.seek(0)
    return output
