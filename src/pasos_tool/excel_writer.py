"""Exportación a Excel del historial semanal de actividad."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, Side

from pasos_tool.model import UnitSystem

_DIA_SEMANA: tuple[str, ...] = ("lun", "mar", "mie", "jue", "vie", "sab", "dom")


@dataclass(frozen=True)
class ExcelLayout:
    """Layout/formatting configuration for the weekly sheet."""

    sheet_name: str = "Resumen semanal"
    unit_system: UnitSystem = UnitSystem.METRIC


def header_map(unit_system: UnitSystem) -> dict[str, str]:
    """Column -> header label; distance/speed labels follow the unit system."""
    imperial = unit_system is UnitSystem.IMPERIAL
    return {
        "weekday": "Día",
        "date": "Fecha",
        "steps": "Pasos",
        "activeEnergy": "Energía activa\n(kcal)",
        "distance": "Distancia (mi)" if imperial else "Distancia (km)",
        "speed": "Velocidad (mph)" if imperial else "Velocidad (km/h)",
        "activeTime": "Tiempo activo\n(h)",
    }


def _weekday_label(i: object) -> str:
    """Convierte índice 0-6 (lunes-domingo) a etiqueta de 3 letras."""
    try:
        if i is None or (isinstance(i, float) and pd.isna(i)):
            return ""
        if isinstance(i, int | float):
            idx = int(i)
            return _DIA_SEMANA[idx] if 0 <= idx < 7 else ""
        return ""
    except (ValueError, TypeError):
        return ""


def _add_weekday_column(export_df: pd.DataFrame) -> pd.DataFrame:
    """Añade columna weekday (Día) a partir de date."""
    if "date" not in export_df.columns or export_df.empty:
        return export_df
    weekday_series = pd.to_datetime(export_df["date"]).dt.weekday
    export_df = export_df.copy()
    export_df["weekday"] = weekday_series.map(_weekday_label)
    cols = ["weekday"] + [c for c in export_df.columns if c != "weekday"]
    return export_df[cols]


def write_weekly_xlsx(df: pd.DataFrame, out_path: Path, layout: ExcelLayout) -> None:
    """Write the weekly history as a formatted Excel sheet.

    Args:
        df: Weekly DataFrame (date + one column per metric).
        out_path: Output path for the XLSX file.
        layout: Excel layout parameters.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)

    export_df = _add_weekday_column(df.copy())
    if "date" in export_df.columns:
        export_df["date"] = pd.to_datetime(export_df["date"], errors="coerce")
    export_df = export_df.rename(columns=header_map(layout.unit_system))

    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        export_df.to_excel(writer, index=False, sheet_name=layout.sheet_name)
        ws = writer.book[layout.sheet_name]
        _format_sheet(ws)


def _style_header_row(ws: Any) -> None:
    """Aplica fuente negrita, alineación y borde a la fila de cabecera."""
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    header_font = Font(bold=True)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.alignment = center
        cell.border = border


def _style_body_rows(ws: Any) -> None:
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    center = Alignment(horizontal="center", vertical="center")
    for row in ws.iter_rows(min_row=2):
        for cell in row:
            cell.alignment = center
            cell.border = border


def _header_formats(ws: Any) -> dict[int, tuple[int, str | None]]:
    """Map column index (1-based) -> (width, number format) by header text."""
    out: dict[int, tuple[int, str | None]] = {}
    for idx, cell in enumerate(ws[1], start=1):
        header = str(cell.value)
        if header == "Día":
            out[idx] = (6, None)
        elif header == "Fecha":
            out[idx] = (12, "dd/mm/yyyy")
        elif header == "Pasos":
            out[idx] = (10, "#,##0")
        elif header.startswith("Tiempo activo"):
            out[idx] = (12, "0.00")
        else:
            out[idx] = (14, "0.00")
    return out


def _format_sheet(ws: Any) -> None:
    """Apply borders, widths and number formats to a worksheet.

    Args:
        ws: openpyxl worksheet.
    """
    _style_header_row(ws)
    _style_body_rows(ws)
    for idx, (width, fmt) in _header_formats(ws).items():
        letter = ws.cell(row=1, column=idx).column_letter
        ws.column_dimensions[letter].width = width
        if fmt is None:
            continue
        for row in ws.iter_rows(min_row=2, min_col=idx, max_col=idx):
            row[0].number_format = fmt
