"""Markup resolution and per-line selling prices."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union

from .models import CostLine, MarkupPolicy, PricedLine, money

logger = logging.getLogger(__name__)

MARKUP_SOURCES = ("product", "implied", "grid", "category", "default", "none")


@dataclass(frozen=True)
class MarkupResult:
    percentage: float
    source: str


def calculate_implied_markup(cost_price: Optional[float], selling_price: Optional[float]) -> Optional[float]:
    """Markup already embedded in a catalog selling price, if any."""

    if not cost_price or not selling_price:
        return None
    if cost_price <= 0 or selling_price <= cost_price:
        return None
    return (selling_price - cost_price) / cost_price * 100.0


def _candidates(category: Union[str, Sequence[str], None]) -> Tuple[str, ...]:
    if category is None:
        return ()
    if isinstance(category, str):
        return (category,)
    return tuple(c for c in category if c)


def resolve_markup(
    category: Union[str, Sequence[str], None],
    product_markup: Optional[float] = None,
    implied_markup: Optional[float] = None,
    grid_markup: Optional[float] = None,
    policy: Optional[MarkupPolicy] = None,
) -> MarkupResult:
    """Resolve one markup percentage.

    Precedence: explicit product markup, implied markup, grid markup, the
    first matching category entry in ``policy``, then the policy default.
    ``category`` may be a single name or an ordered tuple of candidates.
    """
    if product_markup is not None and product_markup > 0:
        return MarkupResult(float(product_markup), "product")
    if implied_markup is not None and implied_markup > 0:
        return MarkupResult(float(implied_markup), "implied")
    if grid_markup is not None and grid_markup > 0:
        return MarkupResult(float(grid_markup), "grid")
    if policy is not None:
        for candidate in _candidates(category):
            value = policy.for_category(candidate)
            if value is not None:
                return MarkupResult(value, "category")
        if policy.default_percent > 0:
            return MarkupResult(float(policy.default_percent), "default")
    return MarkupResult(0.0, "none")


def apply_markup(cost: float, percentage: float) -> float:
    return float(cost) * (1.0 + float(percentage) / 100.0)


def calculate_gross_margin(cost: float, selling: float) -> float:
    """Profit as a percentage of the selling price."""

    if selling <= 0:
        return 0.0
    return (selling - cost) / selling * 100.0


def blended_markup(cost: float, selling: float) -> float:
    if cost <= 0:
        return 0.0
    return (selling - cost) / cost * 100.0


def price_line(line: PricedLine, policy: Optional[MarkupPolicy]) -> CostLine:
    """Resolve this line's own markup and attach a selling price."""

    resolved = resolve_markup(
        line.markup_categories,
        product_markup=line.product_markup,
        implied_markup=line.implied_markup,
        grid_markup=line.grid_markup,
        policy=policy,
    )
    # grid markup is applied to the raw grid price; any other source marks up the full cost
    base = line.markup_base if resolved.source == "grid" else line.cost
    selling = money(apply_markup(base, resolved.percentage))
    logger.debug("%s: markup %.2f%% from %s", line.key, resolved.percentage, resolved.source)
    return CostLine(
        key=line.key,
        name=line.name,
        category=line.category,
        cost=line.cost,
        selling_price=selling,
        markup_percent=round(resolved.percentage, 2),
        markup_source=resolved.source,
        quantity=round(line.quantity, 4),
        unit=line.unit,
        unit_price=round(line.unit_price, 4),
        pricing_method=line.pricing_method,
        description=line.description,
    )


def price_lines(lines: Iterable[PricedLine], policy: Optional[MarkupPolicy]) -> Tuple[CostLine, ...]:
    return tuple(price_line(line, policy) for line in lines)


__all__ = [
    "MARKUP_SOURCES",
    "MarkupResult",
    "calculate_implied_markup",
    "resolve_markup",
    "apply_markup",
    "calculate_gross_margin",
    "blended_markup",
    "price_line",
    "price_lines",
]
