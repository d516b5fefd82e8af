"""Binding between the displayed result and the persisted record.

The save path never recomputes: it reads the last committed
:class:`CalculationResult` and turns it into a :class:`PersistenceRecord`.
"""
from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from .models import CalculationResult, money

logger = logging.getLogger(__name__)

COMPUTING = "computing"
COMMITTED = "committed"

_KEY_FIELDS = (
    "status",
    "fabric_cost",
    "lining_cost",
    "manufacturing_cost",
    "heading_cost",
    "options_cost",
    "total_cost",
    "selling_price",
    "linear_meters_or_sqm",
    "pieces_required",
    "orientation",
    "input_key",
)


def derive_result_key(result: CalculationResult) -> str:
    """Composite of every cost component, the quantity and the input identity."""

    parts: Dict[str, Any] = {name: getattr(result, name) for name in _KEY_FIELDS}
    parts["lines"] = [(line.key, line.cost, line.selling_price) for line in result.lines]
    payload = json.dumps(parts, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class PersistenceRecord:
    """Durable shape of a priced treatment; re-displayable without recomputation."""

    linear_meters_or_sqm: float
    quantity_unit: str
    fabric_cost: float
    lining_cost: float
    manufacturing_cost: float
    heading_cost: float
    hardware_cost: float
    options_cost: float
    total_cost: float
    total_selling: float
    effective_markup_percent: float
    profit_margin_percent: float
    cost_breakdown: Tuple[Mapping[str, Any], ...] = ()
    result_key: str = ""
    source: str = "committed"

    def to_dict(self) -> dict:
        return {
            "linear_meters": self.linear_meters_or_sqm,
            "quantity_unit": self.quantity_unit,
            "fabric_cost": self.fabric_cost,
            "lining_cost": self.lining_cost,
            "manufacturing_cost": self.manufacturing_cost,
            "heading_cost": self.heading_cost,
            "hardware_cost": self.hardware_cost,
            "options_cost": self.options_cost,
            "total_cost": self.total_cost,
            "total_selling": self.total_selling,
            "markup_percentage": self.effective_markup_percent,
            "profit_margin_percentage": self.profit_margin_percent,
            "cost_breakdown": [dict(entry) for entry in self.cost_breakdown],
            "result_key": self.result_key,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, source: str = "previous") -> "PersistenceRecord":
        def number(key: str) -> float:
            try:
                return float(raw.get(key) or 0.0)
            except (TypeError, ValueError):
                return 0.0

        return cls(
            linear_meters_or_sqm=number("linear_meters"),
            quantity_unit=str(raw.get("quantity_unit") or ""),
            fabric_cost=number("fabric_cost"),
            lining_cost=number("lining_cost"),
            manufacturing_cost=number("manufacturing_cost"),
            heading_cost=number("heading_cost"),
            hardware_cost=number("hardware_cost"),
            options_cost=number("options_cost"),
            total_cost=number("total_cost"),
            total_selling=number("total_selling"),
            effective_markup_percent=number("markup_percentage"),
            profit_margin_percent=number("profit_margin_percentage"),
            cost_breakdown=tuple(dict(e) for e in raw.get("cost_breakdown") or ()),
            result_key=str(raw.get("result_key") or ""),
            source=source,
        )


def build_persistence_record(result: CalculationResult, *, source: str = "committed") -> PersistenceRecord:
    """Copy ``result`` into a record verbatim."""

    hardware = money(sum(line.cost for line in result.lines if line.category == "hardware"))
    return PersistenceRecord(
        linear_meters_or_sqm=result.linear_meters_or_sqm,
        quantity_unit=result.quantity_unit,
        fabric_cost=result.fabric_cost,
        lining_cost=result.lining_cost,
        manufacturing_cost=result.manufacturing_cost,
        heading_cost=result.heading_cost,
        hardware_cost=hardware,
        options_cost=result.options_cost,
        total_cost=result.total_cost,
        total_selling=result.selling_price,
        effective_markup_percent=result.effective_markup_percent,
        profit_margin_percent=result.profit_margin_percent,
        cost_breakdown=tuple(line.to_dict() for line in result.lines),
        result_key=derive_result_key(result),
        source=source,
    )


class ResultBinding:
    """Latest-input-wins holder of the committed result.

    ``begin`` records the input snapshot being computed; ``offer`` commits a
    result only when it belongs to that snapshot and its derived key differs
    from the last committed one.
    """

    def __init__(self) -> None:
        self.state: Optional[str] = None
        self._latest_input: Optional[str] = None
        self._committed: Optional[CalculationResult] = None
        self._committed_key: Optional[str] = None
        self._lock = threading.Lock()

    def begin(self, input_key: str) -> None:
        with self._lock:
            self._latest_input = input_key
            self.state = COMPUTING

    def offer(self, result: CalculationResult) -> bool:
        """Return True when ``result`` became the committed result."""

        with self._lock:
            if self._latest_input is not None and result.input_key != self._latest_input:
                logger.warning("Discarding stale result for input %s", result.input_key[:12])
                return False
            key = derive_result_key(result)
            self._latest_input = result.input_key
            self.state = COMMITTED
            if key == self._committed_key:
                return False
            self._committed = result
            self._committed_key = key
            return True

    @property
    def committed(self) -> Optional[CalculationResult]:
        with self._lock:
            return self._committed

    @property
    def committed_key(self) -> Optional[str]:
        with self._lock:
            return self._committed_key


def prepare_save(
    binding: ResultBinding,
    previous: Optional[Mapping[str, Any]] = None,
    fresh: Optional[CalculationResult] = None,
) -> PersistenceRecord:
    """Record to persist for this save.

    Uses the committed result verbatim.  Without one, ``fresh`` is used unless
    it would replace a non-zero ``previous`` total with zero, in which case
    the previous values are kept.
    """
    committed = binding.committed
    if committed is not None:
        return build_persistence_record(committed)

    previous_total = 0.0
    if previous:
        try:
            previous_total = float(previous.get("total_cost") or 0.0)
        except (TypeError, ValueError):
            previous_total = 0.0
    fresh_total = fresh.total_cost if fresh is not None else 0.0

    if previous and previous_total > 0 and fresh_total == 0:
        logger.warning(
            "No committed result; keeping previously saved total %.2f instead of a computed 0",
            previous_total,
        )
        return PersistenceRecord.from_dict(previous, source="previous")
    if fresh is None:
        if previous:
            return PersistenceRecord.from_dict(previous, source="previous")
        return PersistenceRecord.from_dict({}, source="empty")
    return build_persistence_record(fresh, source="fresh")


__all__ = [
    "COMPUTING",
    "COMMITTED",
    "derive_result_key",
    "PersistenceRecord",
    "build_persistence_record",
    "ResultBinding",
    "prepare_save",
]
