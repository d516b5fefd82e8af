from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .grid import PricingGrid, is_width_only_grid, normalize_grid
from .units import UnknownUnitError, normalize_unit, to_internal

LINEAR_CATEGORIES = frozenset({"curtains"})
AREA_CATEGORIES = frozenset(
    {
        "roman_blinds",
        "roller_blinds",
        "venetian_blinds",
        "vertical_blinds",
        "cellular_shades",
        "shutters",
        "awnings",
        "panel_glide",
    }
)
WALLPAPER_CATEGORIES = frozenset({"wallpaper"})
# Lining and heading lines only exist for these.
LINED_CATEGORIES = frozenset({"curtains", "roman_blinds"})

_CATEGORY_ALIASES = {
    "curtain": "curtains",
    "drape": "curtains",
    "drapes": "curtains",
    "roman": "roman_blinds",
    "roman_blind": "roman_blinds",
    "roller": "roller_blinds",
    "roller_blind": "roller_blinds",
    "venetian": "venetian_blinds",
    "venetian_blind": "venetian_blinds",
    "vertical": "vertical_blinds",
    "vertical_blind": "vertical_blinds",
    "cellular": "cellular_shades",
    "cellular_blinds": "cellular_shades",
    "honeycomb": "cellular_shades",
    "shutter": "shutters",
    "plantation_shutters": "shutters",
    "awning": "awnings",
    "panel_glides": "panel_glide",
}

PRICING_TYPES = ("per_metre", "per_panel", "per_drop", "height_range", "pricing_grid", "per_sqm", "fixed")

_PRICING_TYPE_ALIASES = {
    "per_meter": "per_metre",
    "per_running_meter": "per_metre",
    "per_running_metre": "per_metre",
    "per_linear_meter": "per_metre",
    "per_linear_metre": "per_metre",
    "linear_meter": "per_metre",
    "per_m": "per_metre",
    "grid": "pricing_grid",
    "height_based": "height_range",
    "per_height": "height_range",
    "per_square_meter": "per_sqm",
    "per_square_metre": "per_sqm",
    "per_m2": "per_sqm",
    "flat": "fixed",
    "flat_rate": "fixed",
    "fixed_price": "fixed",
}

OPTION_METHODS = (
    "fixed",
    "per-unit",
    "per-meter",
    "per-sqm",
    "per-panel",
    "per-width",
    "per-drop",
    "pricing-grid",
    "percentage",
)

_OPTION_METHOD_ALIASES = {
    "per-metre": "per-meter",
    "per-linear-meter": "per-meter",
    "per-linear-metre": "per-meter",
    "per-running-meter": "per-meter",
    "per-running-metre": "per-meter",
    "linear-meter": "per-meter",
    "per-m": "per-meter",
    "per-square-meter": "per-sqm",
    "per-square-metre": "per-sqm",
    "per-m2": "per-sqm",
    "grid": "pricing-grid",
    "fixed-price": "fixed",
    "flat": "fixed",
    "flat-rate": "fixed",
    "per-item": "per-unit",
    "per-piece": "per-unit",
    "percent": "percentage",
}

TIERS = ("machine", "hand")


def normalize_category(value: Any) -> str:
    text = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    return _CATEGORY_ALIASES.get(text, text)


def normalize_pricing_type(value: Any) -> str:
    text = str(value or "").strip().lower().replace("-", "_")
    return _PRICING_TYPE_ALIASES.get(text, text)


def normalize_option_method(value: Any) -> str:
    text = str(value or "").strip().lower().replace("_", "-")
    if not text:
        return "fixed"
    return _OPTION_METHOD_ALIASES.get(text, text)


def normalize_tier(value: Any) -> str:
    text = str(value or "").strip().lower()
    return "hand" if text.startswith("hand") else "machine"


def _opt_float(value: Any) -> Optional[float]:
    """Finite float or ``None``; NaN and infinities count as absent."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).replace(",", "").strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None and raw[key] != "":
            return raw[key]
    return None


@dataclass(frozen=True)
class HeightBand:
    """Manufacturing price that applies to drops within ``[min_height, max_height]`` cm."""

    min_height_cm: float
    max_height_cm: float
    machine_price: float
    hand_price: Optional[float] = None

    def contains(self, drop_cm: float) -> bool:
        return self.min_height_cm <= drop_cm <= self.max_height_cm

    def price_for(self, tier: str) -> float:
        if tier == "hand" and self.hand_price is not None:
            return self.hand_price
        return self.machine_price

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "HeightBand":
        price = _opt_float(_first(raw, "machine_price", "price")) or 0.0
        return cls(
            min_height_cm=_opt_float(_first(raw, "min_height", "min_height_cm", "min")) or 0.0,
            max_height_cm=_opt_float(_first(raw, "max_height", "max_height_cm", "max")) or float("inf"),
            machine_price=price,
            hand_price=_opt_float(raw.get("hand_price")),
        )


@dataclass(frozen=True, eq=False)
class PricingMethod:
    """Manufacturing price book: one pricing type plus per-tier unit prices."""

    id: str
    pricing_type: str
    name: str = ""
    prices: Mapping[str, float] = field(default_factory=dict)
    height_bands: Tuple[HeightBand, ...] = ()
    pricing_grid: Optional[PricingGrid] = None
    heading_prices: Mapping[str, Mapping[str, float]] = field(default_factory=dict)

    def tier_price(self, basis: str, tier: str, heading: Optional[str] = None) -> float:
        """Unit price for ``basis`` (metre/drop/panel/sqm) at ``tier``.

        A heading-specific override wins over the method's own price; the hand
        tier falls back to the machine price when it is not configured.
        """
        keys = [f"{tier}_price_per_{basis}"]
        if tier != "machine":
            keys.append(f"machine_price_per_{basis}")
        if heading and heading in self.heading_prices:
            override = self.heading_prices[heading]
            for key in keys:
                value = _opt_float(override.get(key))
                if value:
                    return value
        for key in keys:
            value = self.prices.get(key)
            if value:
                return float(value)
        return 0.0

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, default_id: str = "template") -> "PricingMethod":
        prices: Dict[str, float] = {}
        for tier in TIERS:
            for basis in ("metre", "drop", "panel", "sqm"):
                key = f"{tier}_price_per_{basis}"
                value = _opt_float(raw.get(key))
                if value is None and basis == "metre":
                    value = _opt_float(raw.get(f"{tier}_price_per_meter"))
                if value is not None:
                    prices[key] = value
        bands = tuple(HeightBand.from_dict(b) for b in (raw.get("height_price_ranges") or raw.get("height_bands") or []))
        heading_prices = {
            str(k): dict(v) for k, v in (raw.get("heading_prices") or {}).items() if isinstance(v, Mapping)
        }
        grid_raw = _first(raw, "pricing_grid", "pricing_grid_data")
        return cls(
            id=str(_first(raw, "id", "pricing_method_id") or default_id),
            pricing_type=normalize_pricing_type(_first(raw, "pricing_type", "pricing_method")),
            name=str(raw.get("name") or ""),
            prices=prices,
            height_bands=bands,
            pricing_grid=normalize_grid(grid_raw, label="manufacturing pricing grid"),
            heading_prices=heading_prices,
        )


@dataclass(frozen=True)
class LiningType:
    type: str
    price_per_metre: float = 0.0
    labour_per_curtain: float = 0.0
    name: str = ""

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "LiningType":
        return cls(
            type=str(_first(raw, "type", "id") or ""),
            price_per_metre=_opt_float(_first(raw, "price_per_metre", "price_per_meter")) or 0.0,
            labour_per_curtain=_opt_float(raw.get("labour_per_curtain")) or 0.0,
            name=str(raw.get("name") or raw.get("type") or ""),
        )


@dataclass(frozen=True, eq=False)
class TreatmentTemplate:
    """Read-only catalog description of a product family.

    Allowances left as ``None`` defer to the configured fallbacks; fullness
    left as ``None`` means no multiplication.
    """

    id: str
    name: str
    category: str
    pricing: PricingMethod
    pricing_methods: Tuple[PricingMethod, ...] = ()
    fullness_ratio: Optional[float] = None
    header_hem_cm: Optional[float] = None
    bottom_hem_cm: Optional[float] = None
    side_hem_cm: Optional[float] = None
    seam_hem_cm: Optional[float] = None
    return_left_cm: Optional[float] = None
    return_right_cm: Optional[float] = None
    waste_percent: Optional[float] = None
    panel_configuration: str = "single"
    base_price: float = 0.0
    lining_types: Tuple[LiningType, ...] = ()
    heading_upcharge_per_curtain: float = 0.0
    heading_upcharge_per_metre: float = 0.0

    def method_by_id(self, method_id: Optional[str]) -> Optional[PricingMethod]:
        if not method_id:
            return None
        for method in self.pricing_methods:
            if method.id == str(method_id):
                return method
        return None

    def lining(self, lining_type: Optional[str]) -> Optional[LiningType]:
        if not lining_type or lining_type == "none":
            return None
        for lining in self.lining_types:
            if lining.type == lining_type:
                return lining
        return None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TreatmentTemplate":
        returns = _opt_float(_first(raw, "default_returns_cm", "returns"))
        return_left = _opt_float(_first(raw, "return_left_cm", "return_left"))
        return_right = _opt_float(_first(raw, "return_right_cm", "return_right"))
        return cls(
            id=str(raw.get("id") or ""),
            name=str(raw.get("name") or ""),
            category=normalize_category(_first(raw, "treatment_category", "category")),
            pricing=PricingMethod.from_dict(raw, default_id=str(raw.get("id") or "template")),
            pricing_methods=tuple(PricingMethod.from_dict(m) for m in (raw.get("pricing_methods") or [])),
            fullness_ratio=_opt_float(_first(raw, "fullness_ratio", "default_fullness_ratio")),
            header_hem_cm=_opt_float(_first(raw, "header_hem_cm", "header_allowance", "header_hem")),
            bottom_hem_cm=_opt_float(_first(raw, "bottom_hem_cm", "bottom_hem")),
            side_hem_cm=_opt_float(_first(raw, "side_hem_cm", "side_hems")),
            seam_hem_cm=_opt_float(_first(raw, "seam_hem_cm", "seam_hems", "seam_allowance")),
            return_left_cm=return_left if return_left is not None else returns,
            return_right_cm=return_right if return_right is not None else returns,
            waste_percent=_opt_float(_first(raw, "waste_percent", "waste_percentage")),
            panel_configuration=str(_first(raw, "panel_configuration", "curtain_type") or "single"),
            base_price=_opt_float(raw.get("base_price")) or 0.0,
            lining_types=tuple(LiningType.from_dict(l) for l in (raw.get("lining_types") or [])),
            heading_upcharge_per_curtain=_opt_float(raw.get("heading_upcharge_per_curtain")) or 0.0,
            heading_upcharge_per_metre=_opt_float(raw.get("heading_upcharge_per_metre")) or 0.0,
        )


@dataclass(frozen=True, eq=False)
class FabricItem:
    """Fabric or hard material as supplied (and possibly grid-enriched) by the catalog."""

    id: str
    name: str = ""
    unit_price: float = 0.0
    cost_price: Optional[float] = None
    selling_price: Optional[float] = None
    pricing_method: str = "per_metre"
    pricing_grid: Optional[PricingGrid] = None
    grid_markup: Optional[float] = None
    product_markup: Optional[float] = None
    width_cm: Optional[float] = None
    roll_length_cm: Optional[float] = None
    pattern_repeat_vertical_cm: float = 0.0
    pattern_repeat_horizontal_cm: float = 0.0
    category: str = "fabric"

    @property
    def base_unit_price(self) -> float:
        """Markup-free unit price: cost price wins over selling/unit price."""

        if self.cost_price and self.cost_price > 0:
            return self.cost_price
        if self.unit_price and self.unit_price > 0:
            return self.unit_price
        return self.selling_price or 0.0

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "FabricItem":
        return cls(
            id=str(raw.get("id") or ""),
            name=str(raw.get("name") or ""),
            unit_price=_opt_float(_first(raw, "unit_price", "price_per_meter", "price_per_metre", "price")) or 0.0,
            cost_price=_opt_float(raw.get("cost_price")),
            selling_price=_opt_float(raw.get("selling_price")),
            pricing_method=normalize_pricing_type(raw.get("pricing_method") or "per_metre"),
            pricing_grid=normalize_grid(_first(raw, "pricing_grid", "pricing_grid_data"), label=f"pricing grid for {raw.get('name') or raw.get('id')}"),
            grid_markup=_opt_float(_first(raw, "grid_markup", "pricing_grid_markup")),
            product_markup=_opt_float(_first(raw, "product_markup", "markup_percentage")),
            width_cm=_opt_float(_first(raw, "width_cm", "fabric_width_cm", "fabric_width", "roll_width_cm")),
            roll_length_cm=_opt_float(raw.get("roll_length_cm")),
            pattern_repeat_vertical_cm=_opt_float(_first(raw, "pattern_repeat_vertical_cm", "vertical_pattern_repeat_cm")) or 0.0,
            pattern_repeat_horizontal_cm=_opt_float(_first(raw, "pattern_repeat_horizontal_cm", "horizontal_pattern_repeat_cm")) or 0.0,
            category=str(raw.get("category") or "fabric"),
        )


_LENGTH_FIELDS = frozenset(
    {
        "rail_width",
        "drop",
        "wall_width",
        "wall_height",
        "side_hems",
        "return_left",
        "return_right",
        "pooling",
        "fabric_width",
    }
)


@dataclass(frozen=True)
class MeasurementSet:
    """User-entered measurements, lengths expressed in ``unit``.

    A key suffixed ``_cm`` holds an already-converted centimetre value and wins
    over the display-unit key of the same name.
    """

    values: Mapping[str, Any] = field(default_factory=dict)
    unit: str = "cm"

    def length_cm(self, name: str) -> Optional[float]:
        cached = _opt_float(self.values.get(f"{name}_cm"))
        if cached is not None:
            return cached
        value = _opt_float(self.values.get(name))
        if value is None:
            return None
        return to_internal(value, self.unit)

    def number(self, name: str) -> Optional[float]:
        return _opt_float(self.values.get(name))

    def text(self, name: str) -> Optional[str]:
        value = self.values.get(name)
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def flag(self, name: str) -> bool:
        value = self.values.get(name)
        if isinstance(value, bool):
            return value
        return str(value or "").strip().lower() in {"1", "true", "yes", "on"}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], unit: Optional[str] = None, *, default_unit: str = "cm") -> "MeasurementSet":
        values = dict(raw)
        chosen = unit or values.pop("unit", None) or default_unit
        try:
            chosen = normalize_unit(chosen)
        except UnknownUnitError:
            chosen = normalize_unit(default_unit)
        return cls(values=values, unit=chosen)


@dataclass(frozen=True, eq=False)
class SelectedOption:
    """Priced add-on line; ``precomputed_price`` is used verbatim when present."""

    id: str
    name: str
    price: float = 0.0
    pricing_method: str = "fixed"
    category: Optional[str] = None
    precomputed_price: Optional[float] = None
    pricing_grid: Any = None
    quantity: float = 1.0
    product_markup: Optional[float] = None

    @property
    def is_lining(self) -> bool:
        return (self.category or "").lower() == "lining" or "lining" in self.name.lower()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SelectedOption":
        grid_raw = _first(raw, "pricing_grid", "pricing_grid_data", "pricingGridData")
        if grid_raw is not None and not is_width_only_grid(grid_raw):
            grid_raw = normalize_grid(grid_raw, label=f"option grid for {raw.get('name')}")
        return cls(
            id=str(_first(raw, "id", "option_key", "name") or ""),
            name=str(raw.get("name") or raw.get("option_key") or ""),
            price=_opt_float(raw.get("price")) or 0.0,
            pricing_method=normalize_option_method(_first(raw, "pricing_method", "pricingMethod")),
            category=_first(raw, "category", "option_category"),
            precomputed_price=_opt_float(_first(raw, "precomputed_price", "calculated_price", "calculatedPrice")),
            pricing_grid=grid_raw,
            quantity=_opt_float(raw.get("quantity")) or 1.0,
            product_markup=_opt_float(raw.get("product_markup")),
        )


@dataclass(frozen=True)
class MarkupPolicy:
    default_percent: float = 0.0
    category_percents: Mapping[str, float] = field(default_factory=dict)

    def for_category(self, category: Optional[str]) -> Optional[float]:
        if not category:
            return None
        key = str(category).strip().lower()
        for candidate in (key, normalize_category(key)):
            value = self.category_percents.get(candidate)
            if value is not None and value >= 0:
                return float(value)
        return None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, default_percent: float = 0.0) -> "MarkupPolicy":
        categories = raw.get("category_markups") or raw.get("categories") or {}
        default = _opt_float(_first(raw, "default_markup_percentage", "default_percent"))
        return cls(
            default_percent=default if default is not None else default_percent,
            category_percents={str(k).lower(): float(v) for k, v in categories.items() if _opt_float(v) is not None},
        )


@dataclass(frozen=True)
class QuantityResult:
    """Material quantity for one treatment, both per piece and to order."""

    kind: str
    unit: str
    orientation: str
    per_piece_quantity: float = 0.0
    total_quantity: float = 0.0
    pieces_required: int = 0
    pieces_charged: int = 0
    widths_required: int = 0
    drops_per_width: int = 0
    seams_count: int = 0
    panel_count: int = 1
    fullness_ratio: float = 1.0
    width_cm: float = 0.0
    height_cm: float = 0.0
    required_width_cm: float = 0.0
    total_width_cm: float = 0.0
    total_drop_cm: float = 0.0
    effective_width_cm: float = 0.0
    effective_height_cm: float = 0.0
    total_length_m: float = 0.0
    uses_leftover: bool = False
    recommended_orientation: str = ""
    alternative_quantity: Optional[float] = None
    steps: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def is_missing(self) -> bool:
        return self.kind == "missing"

    @property
    def charged_quantity(self) -> float:
        if self.uses_leftover and self.pieces_required > 1:
            return self.per_piece_quantity
        return self.total_quantity

    @property
    def linear_metres(self) -> float:
        return self.charged_quantity if self.unit == "m" else 0.0

    @property
    def sqm(self) -> float:
        return self.charged_quantity if self.unit == "sqm" else 0.0


def money(value: float) -> float:
    return round(float(value), 2)


@dataclass(frozen=True)
class PricedLine:
    """Unmarked cost line.

    ``markup_base`` is the price before any grid markup already folded into
    ``cost``; the markup resolver applies its percentage to this base so a
    grid markup is never applied twice.
    """

    key: str
    name: str
    category: str
    cost: float
    markup_base: float
    markup_categories: Tuple[str, ...] = ()
    quantity: float = 0.0
    unit: str = ""
    unit_price: float = 0.0
    pricing_method: str = ""
    description: str = ""
    product_markup: Optional[float] = None
    implied_markup: Optional[float] = None
    grid_markup: Optional[float] = None
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CostLine:
    """One priced line (fabric, lining, manufacturing, heading, hardware or option)."""

    key: str
    name: str
    category: str
    cost: float
    selling_price: float
    markup_percent: float
    markup_source: str
    quantity: float = 0.0
    unit: str = ""
    unit_price: float = 0.0
    pricing_method: str = ""
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.key,
            "name": self.name,
            "category": self.category,
            "quantity": self.quantity,
            "unit": self.unit,
            "unit_price": self.unit_price,
            "total_cost": self.cost,
            "selling_price": self.selling_price,
            "markup_percentage": self.markup_percent,
            "markup_source": self.markup_source,
            "pricing_method": self.pricing_method,
            "description": self.description,
        }


_COST_FIELDS = ("fabricCost", "liningCost", "manufacturingCost", "headingCost", "optionsCost", "totalCost")


@dataclass(frozen=True)
class CalculationResult:
    """Immutable engine output consumed identically by display and persistence."""

    status: str
    fabric_cost: float = 0.0
    lining_cost: float = 0.0
    manufacturing_cost: float = 0.0
    heading_cost: float = 0.0
    options_cost: float = 0.0
    total_cost: float = 0.0
    linear_meters_or_sqm: float = 0.0
    pieces_required: int = 0
    orientation: str = ""
    fullness_ratio: float = 1.0
    selling_price: float = 0.0
    effective_markup_percent: float = 0.0
    profit_margin_percent: float = 0.0
    quantity_unit: str = ""
    quantity: Optional[QuantityResult] = None
    lines: Tuple[CostLine, ...] = ()
    warnings: Tuple[str, ...] = ()
    input_key: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "fabricCost": self.fabric_cost,
            "liningCost": self.lining_cost,
            "manufacturingCost": self.manufacturing_cost,
            "headingCost": self.heading_cost,
            "optionsCost": self.options_cost,
            "totalCost": self.total_cost,
            "linearMetersOrSqm": self.linear_meters_or_sqm,
            "quantityUnit": self.quantity_unit,
            "piecesRequired": self.pieces_required,
            "orientation": self.orientation,
            "recommendedOrientation": self.quantity.recommended_orientation if self.quantity else "",
            "fullnessRatio": self.fullness_ratio,
            "sellingPrice": self.selling_price,
            "effectiveMarkupPercent": self.effective_markup_percent,
            "profitMarginPercent": self.profit_margin_percent,
            "breakdown": [line.to_dict() for line in self.lines],
            "formulaSteps": list(self.quantity.steps) if self.quantity else [],
            "warnings": list(self.warnings),
        }

    def for_display(self, can_view_cost: bool) -> dict:
        """Result view with raw cost figures removed for viewers without cost access."""

        data = self.to_dict()
        if can_view_cost:
            return data
        for key in _COST_FIELDS + ("effectiveMarkupPercent", "profitMarginPercent"):
            data.pop(key, None)
        data["breakdown"] = [
            {k: v for k, v in line.items() if k not in {"total_cost", "unit_price", "markup_percentage", "markup_source"}}
            for line in data["breakdown"]
        ]
        return data


__all__ = [
    "LINEAR_CATEGORIES",
    "AREA_CATEGORIES",
    "WALLPAPER_CATEGORIES",
    "LINED_CATEGORIES",
    "PRICING_TYPES",
    "OPTION_METHODS",
    "normalize_category",
    "normalize_pricing_type",
    "normalize_option_method",
    "normalize_tier",
    "HeightBand",
    "PricingMethod",
    "LiningType",
    "TreatmentTemplate",
    "FabricItem",
    "MeasurementSet",
    "SelectedOption",
    "MarkupPolicy",
    "QuantityResult",
    "money",
    "PricedLine",
    "CostLine",
    "CalculationResult",
]
