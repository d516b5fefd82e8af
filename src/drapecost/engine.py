"""Treatment cost engine: quantity -> pricing -> markup for one treatment.

``calculate_treatment`` is pure.  ``TreatmentEngine`` wraps it with a bounded
memo keyed by a digest of every input, so repeated calls with the same
snapshot return the same result object.
"""
from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import math
import threading
from collections import OrderedDict
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .config import AllowanceDefaults, Config
from .grid import PricingGrid
from .markup import blended_markup, calculate_gross_margin, price_lines
from .models import (
    CalculationResult,
    CostLine,
    FabricItem,
    MarkupPolicy,
    MeasurementSet,
    PricedLine,
    SelectedOption,
    TreatmentTemplate,
    money,
    normalize_category,
)
from .price_logic import (
    OptionContext,
    fabric_cost,
    heading_cost,
    lining_cost,
    manufacturing_cost,
    options_cost,
)
from .quantity import calculate_quantity

logger = logging.getLogger(__name__)

_COMPONENTS = {
    "fabric": "fabric_cost",
    "lining": "lining_cost",
    "manufacturing": "manufacturing_cost",
    "heading": "heading_cost",
    "option": "options_cost",
    "hardware": "options_cost",
}


def _canonical(value: Any) -> Any:
    if isinstance(value, PricingGrid):
        return {"grid": _canonical(value.fingerprint())}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _canonical(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, float) and not math.isfinite(value):
        return repr(value)
    return value


def input_digest(*parts: Any) -> str:
    """Stable sha256 of the canonical JSON form of ``parts``."""

    payload = json.dumps(_canonical(list(parts)), sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _resolve_category(template: Optional[TreatmentTemplate], category: Optional[str]) -> str:
    if category:
        return normalize_category(category)
    if template is not None and template.category:
        return template.category
    logger.warning("No treatment category supplied; using area calculation")
    return ""


def _totals(lines: Sequence[CostLine]) -> Dict[str, float]:
    totals = {name: 0.0 for name in set(_COMPONENTS.values())}
    for line in lines:
        attr = _COMPONENTS.get(line.category)
        if attr is not None:
            totals[attr] += line.cost
    return {k: money(v) for k, v in totals.items()}


def calculate_treatment(
    template: Optional[TreatmentTemplate],
    fabric: Optional[FabricItem],
    measurements: MeasurementSet,
    options: Sequence[SelectedOption] = (),
    policy: Optional[MarkupPolicy] = None,
    *,
    category: Optional[str] = None,
    defaults: Optional[AllowanceDefaults] = None,
    heading_providers: Optional[Sequence[Any]] = None,
    input_key: str = "",
) -> CalculationResult:
    """Price one treatment.  Never raises for data problems."""

    resolved_category = _resolve_category(template, category)
    quantity = calculate_quantity(resolved_category, template, fabric, measurements, defaults)
    if quantity.is_missing:
        return CalculationResult(
            status="missing_measurement",
            quantity=quantity,
            warnings=quantity.warnings,
            input_key=input_key,
        )

    priced: List[PricedLine] = []
    fabric_pricing = fabric_cost(resolved_category, fabric, quantity)
    if fabric_pricing.line is not None:
        priced.append(fabric_pricing.line)
    lining = lining_cost(resolved_category, template, quantity, measurements)
    if lining is not None:
        priced.append(lining)
    manufacturing = manufacturing_cost(
        template,
        quantity,
        measurements,
        fabric_used_grid=fabric_pricing.used_grid,
        category=resolved_category,
    )
    if manufacturing is not None:
        priced.append(manufacturing)
    heading = heading_cost(resolved_category, template, quantity, measurements, heading_providers)
    if heading is not None:
        priced.append(heading)
    fabric_total = fabric_pricing.line.cost if fabric_pricing.line is not None else 0.0
    priced.extend(options_cost(options, OptionContext(resolved_category, quantity, fabric_total)))

    lines = price_lines(priced, policy)
    totals = _totals(lines)
    total_cost = money(sum(line.cost for line in lines))
    selling = money(sum(line.selling_price for line in lines))

    warnings: Tuple[str, ...] = quantity.warnings + tuple(w for line in priced for w in line.warnings)
    return CalculationResult(
        status="ok",
        fabric_cost=totals["fabric_cost"],
        lining_cost=totals["lining_cost"],
        manufacturing_cost=totals["manufacturing_cost"],
        heading_cost=totals["heading_cost"],
        options_cost=totals["options_cost"],
        total_cost=total_cost,
        linear_meters_or_sqm=quantity.charged_quantity,
        pieces_required=quantity.pieces_required,
        orientation=quantity.orientation,
        fullness_ratio=quantity.fullness_ratio,
        selling_price=selling,
        effective_markup_percent=round(blended_markup(total_cost, selling), 2),
        profit_margin_percent=round(calculate_gross_margin(total_cost, selling), 2),
        quantity_unit=quantity.unit,
        quantity=quantity,
        lines=lines,
        warnings=warnings,
        input_key=input_key,
    )


class TreatmentEngine:
    """Memoising front end to :func:`calculate_treatment`.

    Safe to call from several threads; each distinct input snapshot is
    computed at most once while it stays in the cache.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        policy: Optional[MarkupPolicy] = None,
        heading_providers: Optional[Sequence[Any]] = None,
        cache_size: Optional[int] = None,
    ) -> None:
        self.defaults = config.allowances if config else AllowanceDefaults()
        if policy is None:
            policy = MarkupPolicy(default_percent=config.default_markup if config else 0.0)
        self.policy = policy
        self.heading_providers = heading_providers
        self.cache_size = cache_size if cache_size is not None else (config.cache_size if config else 256)
        self._cache: "OrderedDict[str, CalculationResult]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def input_key(
        self,
        template: Optional[TreatmentTemplate],
        fabric: Optional[FabricItem],
        measurements: MeasurementSet,
        options: Sequence[SelectedOption] = (),
        policy: Optional[MarkupPolicy] = None,
        category: Optional[str] = None,
    ) -> str:
        return input_digest(template, fabric, measurements, list(options), policy or self.policy, category, self.defaults)

    def calculate(
        self,
        template: Optional[TreatmentTemplate],
        fabric: Optional[FabricItem],
        measurements: MeasurementSet,
        options: Sequence[SelectedOption] = (),
        policy: Optional[MarkupPolicy] = None,
        *,
        category: Optional[str] = None,
    ) -> CalculationResult:
        policy = policy or self.policy
        key = self.input_key(template, fabric, measurements, options, policy, category)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                self.hits += 1
                return cached
            self.misses += 1

        result = calculate_treatment(
            template,
            fabric,
            measurements,
            options,
            policy,
            category=category,
            defaults=self.defaults,
            heading_providers=self.heading_providers,
            input_key=key,
        )
        if self.cache_size <= 0:
            return result
        with self._lock:
            # Another thread may have finished the same snapshot first.
            existing = self._cache.get(key)
            if existing is not None:
                return existing
            self._cache[key] = result
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return result

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._cache)


__all__ = ["input_digest", "calculate_treatment", "TreatmentEngine"]
