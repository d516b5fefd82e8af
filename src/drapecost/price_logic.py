"""Pricing resolver: fabric, lining, manufacturing, heading and option lines.

Every function returns an unmarked :class:`PricedLine` (or ``None`` when the
line does not apply).  Missing price data degrades that one line to zero with
a logged warning; nothing here raises for bad catalog data.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from .grid import PricingGrid, is_width_only_grid, lookup_width_only
from .markup import calculate_implied_markup
from .models import (
    LINED_CATEGORIES,
    FabricItem,
    MeasurementSet,
    PricedLine,
    PricingMethod,
    QuantityResult,
    SelectedOption,
    TreatmentTemplate,
    money,
    normalize_tier,
)

logger = logging.getLogger(__name__)

_NO_HEADING = {"", "none", "standard", "no_heading"}


def markup_family(category: str) -> str:
    """Policy category that a treatment category rolls up to."""

    if category == "curtains":
        return "curtains"
    if category == "shutters":
        return "shutters"
    if category == "wallpaper":
        return "wallpaper"
    return "blinds"


@dataclass(frozen=True)
class FabricPricing:
    line: Optional[PricedLine]
    used_grid: bool = False


def grid_dimensions(quantity: QuantityResult) -> Tuple[float, float]:
    """Width/drop used for grid lookups: post-fullness for curtains, post-hem otherwise."""

    if quantity.kind == "linear":
        return quantity.required_width_cm, quantity.height_cm
    return quantity.effective_width_cm, quantity.effective_height_cm


def _flat_basis(fabric: FabricItem, quantity: QuantityResult) -> Tuple[float, str]:
    method = fabric.pricing_method
    if quantity.kind == "linear":
        return quantity.total_length_m, "m"
    if method == "per_metre":
        return quantity.total_length_m, "m"
    if quantity.kind == "rolls":
        return quantity.total_quantity, "roll"
    if method == "fixed":
        return float(quantity.pieces_required or 1), "each"
    return quantity.total_quantity, "sqm"


def fabric_cost(category: str, fabric: Optional[FabricItem], quantity: QuantityResult) -> FabricPricing:
    """Material cost from a valid pricing grid, else quantity x unit price."""

    if fabric is None:
        return FabricPricing(line=None)
    family = markup_family(category)
    categories = (fabric.category or "fabric", "fabric", family)

    if fabric.pricing_grid is not None:
        width, drop = grid_dimensions(quantity)
        price = fabric.pricing_grid.lookup(width, drop)
        if price is not None:
            grid_markup = fabric.grid_markup or 0.0
            cost = money(price * (1.0 + grid_markup / 100.0))
            return FabricPricing(
                line=PricedLine(
                    key="fabric",
                    name=fabric.name or "Fabric",
                    category="fabric",
                    cost=cost,
                    markup_base=money(price),
                    markup_categories=categories,
                    quantity=1.0,
                    unit="each",
                    unit_price=cost,
                    pricing_method="pricing_grid",
                    description=f"Grid price for {width:g} x {drop:g}cm",
                    product_markup=fabric.product_markup,
                    implied_markup=calculate_implied_markup(fabric.cost_price, fabric.selling_price),
                    grid_markup=fabric.grid_markup,
                ),
                used_grid=True,
            )
        logger.warning(
            "Pricing grid for %s has no price at %.1f x %.1fcm; using flat pricing",
            fabric.name or fabric.id,
            width,
            drop,
        )

    amount, unit = _flat_basis(fabric, quantity)
    unit_price = fabric.base_unit_price
    warnings: Tuple[str, ...] = ()
    if unit_price <= 0:
        warnings = (f"{fabric.name or fabric.id} has no unit price; fabric cost is 0",)
        logger.warning("No unit price for %s; fabric line costs 0", fabric.name or fabric.id)
    cost = money(amount * unit_price)
    return FabricPricing(
        line=PricedLine(
            key="fabric",
            name=fabric.name or "Fabric",
            category="fabric",
            cost=cost,
            markup_base=cost,
            markup_categories=categories,
            quantity=amount,
            unit=unit,
            unit_price=unit_price,
            pricing_method=fabric.pricing_method,
            description=f"{amount:g}{unit} x {unit_price:g}",
            product_markup=fabric.product_markup,
            implied_markup=calculate_implied_markup(fabric.cost_price, fabric.selling_price),
            warnings=warnings,
        )
    )


def select_pricing_method(template: TreatmentTemplate, measurements: MeasurementSet) -> PricingMethod:
    selected = measurements.text("selected_pricing_method")
    method = template.method_by_id(selected)
    if method is not None:
        return method
    if selected:
        logger.warning(
            "Pricing method %r not found on template %s; using template defaults",
            selected,
            template.name or template.id,
        )
    return template.pricing


def _quantity_basis(quantity: QuantityResult) -> Tuple[float, str]:
    if quantity.kind == "linear":
        return quantity.total_length_m, "m"
    if quantity.kind == "area":
        return quantity.total_quantity, "sqm"
    return 1.0, "each"


def manufacturing_cost(
    template: Optional[TreatmentTemplate],
    quantity: QuantityResult,
    measurements: MeasurementSet,
    *,
    fabric_used_grid: bool = False,
    category: str = "",
) -> Optional[PricedLine]:
    """Make-up cost by the selected method's pricing type; zero when the fabric was grid priced."""

    if template is None:
        return None
    method = select_pricing_method(template, measurements)
    tier = normalize_tier(measurements.text("manufacturing_type"))
    heading = measurements.text("selected_heading")
    pricing_type = method.pricing_type
    categories = ("manufacturing", markup_family(category or template.category))
    name = method.name or template.name or "Manufacturing"

    if fabric_used_grid:
        return PricedLine(
            key="manufacturing",
            name=name,
            category="manufacturing",
            cost=0.0,
            markup_base=0.0,
            markup_categories=categories,
            pricing_method=pricing_type,
            description="Included in fabric grid price",
        )

    amount = 0.0
    unit = ""
    unit_price = 0.0
    warnings: List[str] = []
    if pricing_type == "per_panel":
        amount, unit = float(quantity.panel_count), "panel"
        unit_price = method.tier_price("panel", tier, heading)
    elif pricing_type == "per_drop":
        amount, unit = float(quantity.widths_required), "drop"
        unit_price = method.tier_price("drop", tier, heading)
    elif pricing_type == "per_metre":
        amount, unit = quantity.total_length_m, "m"
        unit_price = method.tier_price("metre", tier, heading)
    elif pricing_type == "per_sqm":
        if quantity.kind == "area":
            amount = quantity.total_quantity
        else:
            amount = quantity.total_width_cm * quantity.total_drop_cm / 10000.0
        unit = "sqm"
        unit_price = method.tier_price("sqm", tier, heading)
    elif pricing_type == "height_range":
        band = next((b for b in method.height_bands if b.contains(quantity.height_cm)), None)
        if band is None:
            warnings.append(f"No height band covers a {quantity.height_cm:g}cm drop")
            logger.warning("No height band on %s covers %.1fcm", name, quantity.height_cm)
        else:
            amount, unit = _quantity_basis(quantity)
            unit_price = band.price_for(tier)
    elif pricing_type == "pricing_grid":
        grid = method.pricing_grid
        width, drop = grid_dimensions(quantity)
        price = grid.lookup(width, drop) if grid is not None else None
        if price is None:
            warnings.append("Manufacturing pricing grid has no price for these dimensions")
            logger.warning("Manufacturing grid on %s has no price at %.1f x %.1fcm", name, width, drop)
        else:
            amount, unit, unit_price = 1.0, "each", price
    elif pricing_type == "fixed":
        amount, unit = 1.0, "each"
    else:
        warnings.append(f"Unknown pricing type {pricing_type!r}")
        logger.warning("Unknown manufacturing pricing type %r on %s; costing 0", pricing_type, name)

    cost = amount * unit_price + template.base_price
    cost = money(cost)
    description = f"{amount:g}{unit} x {unit_price:g} ({tier})" if unit else ""
    if template.base_price:
        description = (description + " + " if description else "") + f"{template.base_price:g} base"
    return PricedLine(
        key="manufacturing",
        name=name,
        category="manufacturing",
        cost=cost,
        markup_base=cost,
        markup_categories=categories,
        quantity=amount,
        unit=unit,
        unit_price=unit_price,
        pricing_method=pricing_type,
        description=description,
        warnings=tuple(warnings),
    )


@dataclass(frozen=True)
class HeadingInfo:
    name: str
    price_per_metre: float = 0.0


class CatalogHeadingProvider:
    """Heading lookup against a catalog mapping of id -> record."""

    def __init__(self, label: str, entries: Optional[Mapping[str, Any]] = None) -> None:
        self.label = label
        self.entries = dict(entries or {})

    def lookup(self, heading_id: str) -> Optional[HeadingInfo]:
        record = self.entries.get(heading_id)
        if record is None:
            return None
        if isinstance(record, str):
            return HeadingInfo(name=record)
        price = record.get("price_per_metre", record.get("price_per_meter", 0.0)) or 0.0
        return HeadingInfo(name=str(record.get("name") or heading_id), price_per_metre=float(price))


class RawIdentifierProvider:
    label = "raw"

    def lookup(self, heading_id: str) -> Optional[HeadingInfo]:
        return HeadingInfo(name=heading_id) if heading_id else None


def default_heading_providers(
    settings_catalog: Optional[Mapping[str, Any]] = None,
    inventory_catalog: Optional[Mapping[str, Any]] = None,
) -> List[Any]:
    return [
        CatalogHeadingProvider("settings", settings_catalog),
        CatalogHeadingProvider("inventory", inventory_catalog),
        RawIdentifierProvider(),
    ]


def resolve_heading(heading_id: str, providers: Iterable[Any]) -> Optional[HeadingInfo]:
    for provider in providers:
        info = provider.lookup(heading_id)
        if info is not None:
            logger.debug("Heading %s resolved by %s provider", heading_id, getattr(provider, "label", "?"))
            return info
    return None


def heading_cost(
    category: str,
    template: Optional[TreatmentTemplate],
    quantity: QuantityResult,
    measurements: MeasurementSet,
    providers: Optional[Sequence[Any]] = None,
) -> Optional[PricedLine]:
    if category not in LINED_CATEGORIES:
        return None
    heading_id = measurements.text("selected_heading")
    if heading_id is None or heading_id.lower() in _NO_HEADING:
        return None
    info = resolve_heading(heading_id, providers if providers is not None else default_heading_providers())
    if info is None:
        info = HeadingInfo(name=heading_id)

    metres = quantity.total_length_m
    per_curtain = template.heading_upcharge_per_curtain if template else 0.0
    per_metre = template.heading_upcharge_per_metre if template else 0.0
    cost = per_curtain * quantity.panel_count + per_metre * metres + info.price_per_metre * metres
    cost = money(cost)
    return PricedLine(
        key="heading",
        name=info.name,
        category="heading",
        cost=cost,
        markup_base=cost,
        markup_categories=("heading", markup_family(category)),
        quantity=metres,
        unit="m",
        unit_price=per_metre + info.price_per_metre,
        pricing_method="per_metre",
        description=f"{per_curtain:g} x {quantity.panel_count} + ({per_metre:g} + {info.price_per_metre:g}) x {metres:g}m",
    )


def lining_cost(
    category: str,
    template: Optional[TreatmentTemplate],
    quantity: QuantityResult,
    measurements: MeasurementSet,
) -> Optional[PricedLine]:
    if category not in LINED_CATEGORIES or template is None:
        return None
    lining_id = measurements.text("selected_lining")
    if lining_id is None or lining_id.lower() == "none":
        return None
    lining = template.lining(lining_id)
    if lining is None:
        logger.warning("Lining %r is not offered by template %s; skipping", lining_id, template.name or template.id)
        return None
    metres = quantity.total_length_m
    cost = money(metres * lining.price_per_metre + lining.labour_per_curtain * quantity.panel_count)
    return PricedLine(
        key="lining",
        name=lining.name or lining.type,
        category="lining",
        cost=cost,
        markup_base=cost,
        markup_categories=("lining", "fabric", markup_family(category)),
        quantity=metres,
        unit="m",
        unit_price=lining.price_per_metre,
        pricing_method="per_metre",
        description=f"{metres:g}m x {lining.price_per_metre:g} + {lining.labour_per_curtain:g} x {quantity.panel_count}",
    )


@dataclass(frozen=True)
class OptionContext:
    category: str
    quantity: QuantityResult
    fabric_cost: float = 0.0


def _option_basis(option: SelectedOption, ctx: OptionContext) -> Tuple[float, str, float]:
    """Return (amount, unit, unit_price) for one option's own pricing method."""

    q = ctx.quantity
    method = option.pricing_method
    price = option.price
    if method in ("fixed", "per-unit"):
        return option.quantity, "each", price
    if method == "per-meter":
        if q.kind == "area":
            return q.effective_width_cm / 100.0, "m", price
        return q.total_length_m, "m", price
    if method == "per-sqm":
        if q.kind == "area":
            return q.total_quantity, "sqm", price
        return q.total_width_cm * q.total_drop_cm / 10000.0, "sqm", price
    if method == "per-panel":
        return float(q.panel_count), "panel", price
    if method == "per-width":
        return float(q.widths_required), "width", price
    if method == "per-drop":
        return q.total_drop_cm / 100.0, "m", price
    if method == "percentage":
        return ctx.fabric_cost, "%", price / 100.0
    if method == "pricing-grid":
        width, drop = grid_dimensions(q)
        grid_price: Optional[float] = None
        if isinstance(option.pricing_grid, PricingGrid):
            grid_price = option.pricing_grid.lookup(width, drop)
        elif is_width_only_grid(option.pricing_grid):
            grid_price = lookup_width_only(option.pricing_grid, width)
        if grid_price is None:
            logger.warning("Option %s has no usable grid price; using its base price", option.name)
            return option.quantity, "each", price
        return 1.0, "each", grid_price
    logger.warning("Unknown option pricing method %r on %s; pricing as fixed", method, option.name)
    return option.quantity, "each", price


def option_cost(option: SelectedOption, ctx: OptionContext) -> Optional[PricedLine]:
    """Cost of a single selected option; a pre-computed price is used verbatim."""

    if option.is_lining and ctx.category not in LINED_CATEGORIES:
        logger.info("Skipping lining option %s on %s", option.name, ctx.category)
        return None
    is_hardware = (option.category or "").lower() == "hardware"
    key = f"hardware:{option.id}" if is_hardware else f"option:{option.id}"
    categories = tuple(c for c in (option.category, "options", markup_family(ctx.category)) if c)

    if option.precomputed_price is not None:
        cost = money(option.precomputed_price)
        amount, unit, unit_price, description = 1.0, "each", cost, "Pre-computed price"
    else:
        amount, unit, unit_price = _option_basis(option, ctx)
        cost = money(amount * unit_price)
        description = f"{amount:g}{unit} x {unit_price:g}"
    return PricedLine(
        key=key,
        name=option.name,
        category="hardware" if is_hardware else "option",
        cost=cost,
        markup_base=cost,
        markup_categories=categories,
        quantity=amount,
        unit=unit,
        unit_price=unit_price,
        pricing_method=option.pricing_method,
        description=description,
        product_markup=option.product_markup,
    )


def options_cost(options: Sequence[SelectedOption], ctx: OptionContext) -> List[PricedLine]:
    lines = []
    for option in options:
        line = option_cost(option, ctx)
        if line is not None:
            lines.append(line)
    return lines


__all__ = [
    "FabricPricing",
    "HeadingInfo",
    "CatalogHeadingProvider",
    "RawIdentifierProvider",
    "OptionContext",
    "markup_family",
    "grid_dimensions",
    "fabric_cost",
    "select_pricing_method",
    "manufacturing_cost",
    "default_heading_providers",
    "resolve_heading",
    "heading_cost",
    "lining_cost",
    "option_cost",
    "options_cost",
]
