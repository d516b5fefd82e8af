"""Two-dimensional pricing grids (width columns x drop rows).

Grids arrive from catalog records in several historical shapes.  All of them
are normalised into a :class:`PricingGrid` whose table is a pandas DataFrame
indexed by drop with one column per width, both ascending.  Anything that
cannot be normalised into at least one width column and one drop row is
treated as absent.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

GRID_UNITS = ("cm", "mm")
MM_INFERENCE_THRESHOLD = 500.0

_NUMBER_RE = re.compile(r"[^0-9.\-]")


def _to_number(value: Any) -> float:
    if value is None:
        return float("nan")
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float, np.number)):
        return float(value)
    text = _NUMBER_RE.sub("", str(value))
    if not text:
        return float("nan")
    try:
        return float(text)
    except ValueError:
        return float("nan")


@dataclass(frozen=True, eq=False)
class PricingGrid:
    """Normalised width x drop price table."""

    table: pd.DataFrame
    unit: str = "cm"

    @property
    def widths(self) -> List[float]:
        return [float(w) for w in self.table.columns]

    @property
    def drops(self) -> List[float]:
        return [float(d) for d in self.table.index]

    def is_valid(self) -> bool:
        if self.table.shape[0] < 1 or self.table.shape[1] < 1:
            return False
        values = self.table.to_numpy(dtype=float)
        return bool(np.any(np.nan_to_num(values, nan=0.0) > 0))

    def lookup(self, width_cm: float, drop_cm: float) -> Optional[float]:
        """Price for the band containing ``width_cm`` x ``drop_cm``.

        Each axis rounds up to the next grid point; values beyond the last
        point use the largest band.  Returns ``None`` when the cell holds no
        positive price.
        """
        if not self.is_valid():
            return None
        width = float(width_cm)
        drop = float(drop_cm)
        if self.unit == "mm":
            width *= 10.0
            drop *= 10.0
        widths = self.table.columns.to_numpy(dtype=float)
        drops = self.table.index.to_numpy(dtype=float)
        w_idx = min(int(np.searchsorted(widths, width, side="left")), len(widths) - 1)
        d_idx = min(int(np.searchsorted(drops, drop, side="left")), len(drops) - 1)
        price = self.table.iat[d_idx, w_idx]
        if pd.isna(price) or float(price) <= 0:
            return None
        return float(price)

    def fingerprint(self) -> Tuple[Any, ...]:
        cells = tuple(
            tuple(None if pd.isna(v) else float(v) for v in row)
            for row in self.table.to_numpy(dtype=float)
        )
        return (self.unit, tuple(self.widths), tuple(self.drops), cells)

    def to_dict(self) -> dict:
        return {
            "unit": self.unit,
            "widthColumns": self.widths,
            "dropRows": [
                {"drop": drop, "prices": [None if pd.isna(v) else float(v) for v in row]}
                for drop, row in zip(self.drops, self.table.to_numpy(dtype=float))
            ],
        }


def _infer_unit(raw: Mapping[str, Any], dimensions: Iterable[float]) -> str:
    unit = str(raw.get("unit") or "").strip().lower()
    if unit in GRID_UNITS:
        return unit
    finite = [d for d in dimensions if np.isfinite(d)]
    if finite and max(finite) >= MM_INFERENCE_THRESHOLD:
        return "mm"
    return "cm"


def _build(
    widths: Sequence[Any],
    rows: Sequence[Tuple[Any, Sequence[Any]]],
    raw: Mapping[str, Any],
) -> PricingGrid:
    width_values = [_to_number(w) for w in widths]
    drop_values = [_to_number(drop) for drop, _ in rows]
    matrix = []
    for _, prices in rows:
        values = [_to_number(p) for p in list(prices)[: len(width_values)]]
        values.extend([float("nan")] * (len(width_values) - len(values)))
        matrix.append(values)
    table = pd.DataFrame(matrix, index=drop_values, columns=width_values, dtype=float)
    table = table.loc[table.index.notna(), table.columns.notna()]
    if table.index.duplicated().any() or table.columns.duplicated().any():
        logger.warning("Pricing grid has duplicate width/drop bands; keeping the first of each")
        table = table.loc[~table.index.duplicated(), ~table.columns.duplicated()]
    table = table.sort_index(axis=0).sort_index(axis=1)
    unit = _infer_unit(raw, list(width_values) + list(drop_values))
    return PricingGrid(table=table, unit=unit)


def _from_mapping(raw: Mapping[str, Any]) -> Optional[PricingGrid]:
    widths = raw.get("widthColumns")
    drop_rows = raw.get("dropRows")
    prices = raw.get("prices")

    if isinstance(widths, list) and isinstance(drop_rows, list) and drop_rows:
        first = drop_rows[0]
        if isinstance(first, Mapping) and "drop" in first:
            rows = [(row.get("drop"), row.get("prices") or []) for row in drop_rows]
            return _build(widths, rows, raw)
        if isinstance(prices, Mapping):
            rows = []
            for drop in drop_rows:
                d = _to_number(drop)
                cells = []
                for width in widths:
                    w = _to_number(width)
                    keys = (f"{width}_{drop}", f"{width}-{drop}", f"{drop}_{width}", f"{w:g}_{d:g}", f"{w:g}-{d:g}")
                    cells.append(next((prices[k] for k in keys if k in prices), None))
                rows.append((drop, cells))
            return _build(widths, rows, raw)
        if isinstance(prices, list):
            return _build(widths, list(zip(drop_rows, prices)), raw)

    for width_key, drop_key in (("widthRanges", "dropRanges"), ("widths", "heights")):
        widths = raw.get(width_key)
        drops = raw.get(drop_key)
        if isinstance(widths, list) and isinstance(drops, list) and isinstance(prices, list):
            return _build(widths, list(zip(drops, prices)), raw)
    return None


def normalize_grid(data: Any, *, label: str = "pricing grid") -> Optional[PricingGrid]:
    """Normalise any supported grid shape; ``None`` when absent or invalid."""

    if data is None:
        return None
    if isinstance(data, PricingGrid):
        grid = data
    elif isinstance(data, pd.DataFrame):
        grid = _build(list(data.columns), [(idx, list(row)) for idx, row in zip(data.index, data.to_numpy())], {})
    elif isinstance(data, Mapping):
        if not data:
            return None
        try:
            grid = _from_mapping(data)
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring malformed %s: %s", label, exc)
            return None
    else:
        logger.warning("Ignoring %s of unsupported type %s", label, type(data).__name__)
        return None

    if grid is None or not grid.is_valid():
        logger.warning("Ignoring invalid %s; falling back to flat pricing", label)
        return None
    return grid


def is_width_only_grid(data: Any) -> bool:
    return (
        isinstance(data, list)
        and bool(data)
        and isinstance(data[0], Mapping)
        and "width" in data[0]
    )


def lookup_width_only(entries: Sequence[Mapping[str, Any]], width_cm: float) -> Optional[float]:
    """Price of the entry whose width is closest to ``width_cm``."""

    best: Optional[Tuple[float, float]] = None
    for entry in entries:
        width = _to_number(entry.get("width"))
        price = _to_number(entry.get("price"))
        if not np.isfinite(width) or not np.isfinite(price):
            continue
        distance = abs(width - float(width_cm))
        if best is None or distance < best[0]:
            best = (distance, price)
    if best is None or best[1] <= 0:
        return None
    return best[1]


__all__ = [
    "PricingGrid",
    "normalize_grid",
    "is_width_only_grid",
    "lookup_width_only",
]
