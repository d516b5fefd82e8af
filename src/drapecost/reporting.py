from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import pandas as pd

from .models import CalculationResult
from .units import metres_to_fabric_unit, normalize_unit

IMPERIAL_UNITS = frozenset({"inch", "feet", "yard"})

BREAKDOWN_COLUMNS = [
    "LINE",
    "NAME",
    "CATEGORY",
    "QUANTITY",
    "UNIT",
    "UNIT_PRICE",
    "COST",
    "MARKUP_PCT",
    "MARKUP_SOURCE",
    "SELLING_PRICE",
]


def breakdown_frame(result: CalculationResult) -> pd.DataFrame:
    rows = [
        {
            "LINE": line.key,
            "NAME": line.name,
            "CATEGORY": line.category,
            "QUANTITY": line.quantity,
            "UNIT": line.unit,
            "UNIT_PRICE": line.unit_price,
            "COST": line.cost,
            "MARKUP_PCT": line.markup_percent,
            "MARKUP_SOURCE": line.markup_source,
            "SELLING_PRICE": line.selling_price,
        }
        for line in result.lines
    ]
    return pd.DataFrame(rows, columns=BREAKDOWN_COLUMNS)


def fabric_length(result: CalculationResult, display_unit: str = "cm") -> Optional[Tuple[float, str]]:
    """Linear fabric to order in metres, or yards when the display unit is imperial."""

    if not result.ok or result.quantity_unit != "m":
        return None
    unit = "yard" if normalize_unit(display_unit) in IMPERIAL_UNITS else "m"
    return round(metres_to_fabric_unit(result.linear_meters_or_sqm, unit), 2), unit


def make_summary_text(result: CalculationResult, can_view_cost: bool = True, display_unit: str = "cm") -> str:
    if not result.ok:
        reasons = "; ".join(result.warnings) or "missing measurement"
        return f"Cannot calculate: {reasons}.\n"

    frame = breakdown_frame(result)
    if can_view_cost:
        table = frame[["NAME", "CATEGORY", "QUANTITY", "UNIT", "COST", "MARKUP_PCT", "SELLING_PRICE"]]
    else:
        table = frame[["NAME", "CATEGORY", "QUANTITY", "UNIT", "SELLING_PRICE"]]
    quantity = f"{result.linear_meters_or_sqm:g}{result.quantity_unit}"
    lines = [
        f"Quantity: {quantity} ({result.orientation}, {result.pieces_required} piece(s), fullness {result.fullness_ratio:g})",
        f"Breakdown:\n{table.to_string(index=False)}",
    ]
    length = fabric_length(result, display_unit)
    if length is not None:
        lines.insert(1, f"Fabric to order: {length[0]:g} {length[1]}")
    if can_view_cost:
        lines.append(
            f"Total cost ${result.total_cost:,.2f}; selling ${result.selling_price:,.2f} "
            f"(markup {result.effective_markup_percent:.2f}%, margin {result.profit_margin_percent:.2f}%)."
        )
    else:
        lines.append(f"Selling price ${result.selling_price:,.2f}.")
    for warning in result.warnings:
        lines.append(f"Warning: {warning}")
    return "\n".join(lines) + "\n"


def export_breakdown(result: CalculationResult, path: Path) -> Path:
    """Write the cost breakdown to ``.xlsx`` (openpyxl) or ``.csv``."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame = breakdown_frame(result)
    if path.suffix.lower() == ".xlsx":
        frame.to_excel(path, index=False, sheet_name="Breakdown", engine="openpyxl")
    else:
        frame.to_csv(path, index=False)
    return path


__all__ = ["BREAKDOWN_COLUMNS", "IMPERIAL_UNITS", "breakdown_frame", "fabric_length", "make_summary_text", "export_breakdown"]
