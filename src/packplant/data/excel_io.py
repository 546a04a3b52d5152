from __future__ import annotations

import io
import re
import unicodedata
from datetime import datetime

import pandas as pd

from packplant.core.models import InventoryRow

INVENTORY_COLUMNS: list[tuple[str, str]] = [
    ("code", "Código"),
    ("type", "Tipo"),
    ("total_weight", "Peso total (kg)"),
    ("customer", "Cliente"),
    ("branch", "Sucursal"),
    ("lot", "Lote"),
    ("registered_at", "Fecha registro"),
    ("status", "Estatus"),
]


def read_excel_bytes(content: bytes) -> pd.DataFrame:
    """Read .xlsx bytes into a DataFrame (first sheet only)."""
    bio = io.BytesIO(content)
    df = pd.read_excel(bio)
    df.columns = [str(c).strip() for c in df.columns]
    return df


def normalize_col_name(name: str) -> str:
    """Normalize Excel column names to an ASCII-ish snake_case token.

    Handles exports with accents, non-breaking spaces, tabs, and punctuation.
    """

    s = str(name or "").strip().lower()
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = s.replace("\u00a0", " ")
    s = re.sub(r"[\s\t]+", " ", s)
    # keep alnum + spaces, turn the rest into spaces
    s = re.sub(r"[^a-z0-9 ]+", " ", s)
    s = re.sub(r"\s+", "_", s).strip("_")
    return s


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [normalize_col_name(c) for c in df.columns]
    return df


def coerce_date(value, *, field: str = "fecha") -> str:
    """Coerce common Excel/Pandas date representations to ISO YYYY-MM-DD."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        raise ValueError(f"{field} vacía")

    if isinstance(value, datetime):
        return value.date().isoformat()

    # pandas Timestamp
    if hasattr(value, "to_pydatetime"):
        return value.to_pydatetime().date().isoformat()

    s = str(value).strip()
    try:
        return datetime.fromisoformat(s).date().isoformat()
    except ValueError:
        pass

    for fmt in ("%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue

    raise ValueError(f"{field} inválida: {value!r}")


def coerce_float(value) -> float | None:
    """Coerce common Excel/Pandas numeric representations to float.

    Returns None when value is empty/NaN.
    Accepts numbers and strings (handles ',' as decimal separator).
    """
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None

    if isinstance(value, (int, float)):
        return float(value)

    s = str(value).strip()
    if not s or s.lower() == "nan":
        return None

    # Handle common LATAM formats: 1.234,56 -> 1234.56
    if "," in s and "." in s:
        s = s.replace(".", "").replace(",", ".")
    elif "," in s:
        s = s.replace(",", ".")

    try:
        return float(s)
    except ValueError:
        return None


def clean_text(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    s = str(value).replace("\u00a0", " ").strip()
    return "" if s.lower() == "nan" else s


def inventory_to_excel_bytes(rows: list[InventoryRow], *, sheet_name: str = "Inventario") -> bytes:
    """Render inventory rows as an .xlsx workbook."""
    data = [{label: getattr(r, attr) for attr, label in INVENTORY_COLUMNS} for r in rows]
    df = pd.DataFrame(data, columns=[label for _, label in INVENTORY_COLUMNS])
    bio = io.BytesIO()
    with pd.ExcelWriter(bio, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
        ws = writer.sheets[sheet_name]
        for idx, (_, label) in enumerate(INVENTORY_COLUMNS):
            width = max([len(label)] + [len(str(d[label])) for d in data]) + 2
            ws.column_dimensions[ws.cell(row=1, column=idx + 1).column_letter].width = min(width, 40)
    return bio.getvalue()
