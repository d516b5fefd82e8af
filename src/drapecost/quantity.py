"""Material quantities for curtains, area treatments and wallpaper.

All inputs are centimetres.  Linear quantities are reported in metres,
area quantities in square metres and wallpaper in whole rolls.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from .config import AllowanceDefaults
from .models import (
    AREA_CATEGORIES,
    LINEAR_CATEGORIES,
    WALLPAPER_CATEGORIES,
    FabricItem,
    MeasurementSet,
    QuantityResult,
    TreatmentTemplate,
)
from .units import check_plausible

logger = logging.getLogger(__name__)

POOLING_PRESETS_CM = {"none": 0.0, "break": 2.0, "puddle": 15.0}
_PAIR_CONFIGURATIONS = {"pair", "double", "pairs"}
_RAILROAD_HINTS = {"railroaded", "railroad", "horizontal", "rotated"}
_AUTO_HINTS = {"auto", "automatic", "best"}


@dataclass(frozen=True)
class Allowances:
    """Allowances after measurement > template > configured default resolution."""

    fullness_ratio: float
    header_hem_cm: float
    bottom_hem_cm: float
    side_hem_cm: float
    seam_hem_cm: float
    return_left_cm: float
    return_right_cm: float
    overlap_cm: float
    pooling_cm: float
    waste_percent: float
    panel_multiplier: int
    fabric_width_cm: Optional[float]
    vertical_repeat_cm: float = 0.0
    horizontal_repeat_cm: float = 0.0

    @property
    def waste_factor(self) -> float:
        return 1.0 + self.waste_percent / 100.0


def _pick(*values: Optional[float], default: float = 0.0) -> float:
    for value in values:
        if value is not None:
            return float(value)
    return default


def _pooling_cm(measurements: MeasurementSet) -> float:
    text = measurements.text("pooling")
    if text is not None and text.lower() in POOLING_PRESETS_CM:
        return POOLING_PRESETS_CM[text.lower()]
    return max(0.0, measurements.length_cm("pooling") or 0.0)


def panel_count(template: Optional[TreatmentTemplate], measurements: MeasurementSet) -> int:
    configuration = (
        measurements.text("curtain_type")
        or measurements.text("panel_configuration")
        or (template.panel_configuration if template else "single")
    )
    return 2 if str(configuration).lower() in _PAIR_CONFIGURATIONS else 1


def treatment_kind(category: str) -> str:
    if category in LINEAR_CATEGORIES:
        return "linear"
    if category in WALLPAPER_CATEGORIES:
        return "rolls"
    if category not in AREA_CATEGORIES:
        logger.warning("Unknown treatment category %r; using area calculation", category)
    return "area"


def resolve_allowances(
    template: Optional[TreatmentTemplate],
    fabric: Optional[FabricItem],
    measurements: MeasurementSet,
    defaults: AllowanceDefaults,
    *,
    linear: bool = True,
) -> Allowances:
    """Resolve every allowance once so no formula reaches for a constant."""

    fullness = 1.0
    if linear:
        fullness = _pick(
            measurements.number("heading_fullness"),
            measurements.number("fullness_ratio"),
            template.fullness_ratio if template else None,
            default=1.0,
        )
        if fullness <= 0:
            fullness = 1.0

    fabric_width = measurements.length_cm("fabric_width")
    if fabric_width is None and fabric is not None:
        fabric_width = fabric.width_cm
    if fabric_width is not None and fabric_width <= 0:
        fabric_width = None

    return Allowances(
        fullness_ratio=fullness,
        header_hem_cm=_pick(measurements.length_cm("header_hem"), template.header_hem_cm if template else None, default=defaults.header_hem_cm),
        bottom_hem_cm=_pick(measurements.length_cm("bottom_hem"), template.bottom_hem_cm if template else None, default=defaults.bottom_hem_cm),
        side_hem_cm=_pick(measurements.length_cm("side_hems"), template.side_hem_cm if template else None, default=defaults.side_hem_cm),
        seam_hem_cm=_pick(measurements.length_cm("seam_hems"), template.seam_hem_cm if template else None, default=defaults.seam_hem_cm),
        return_left_cm=_pick(measurements.length_cm("return_left"), template.return_left_cm if template else None),
        return_right_cm=_pick(measurements.length_cm("return_right"), template.return_right_cm if template else None),
        overlap_cm=_pick(measurements.length_cm("overlap")),
        pooling_cm=_pooling_cm(measurements),
        waste_percent=max(0.0, _pick(measurements.number("waste_percent"), template.waste_percent if template else None, default=defaults.waste_percent)),
        panel_multiplier=panel_count(template, measurements),
        fabric_width_cm=fabric_width,
        vertical_repeat_cm=fabric.pattern_repeat_vertical_cm if fabric else 0.0,
        horizontal_repeat_cm=fabric.pattern_repeat_horizontal_cm if fabric else 0.0,
    )


def round_up_to_repeat(length_cm: float, repeat_cm: float) -> float:
    if repeat_cm <= 0:
        return length_cm
    return math.ceil(length_cm / repeat_cm - 1e-9) * repeat_cm


def _metres(value: float) -> float:
    return round(value, 4)


def _dimension(measurements: MeasurementSet, *names: str) -> Optional[float]:
    for name in names:
        value = measurements.length_cm(name)
        if value is not None:
            return value
    return None


def missing_measurement(reason: str) -> QuantityResult:
    logger.info("Cannot calculate quantity: %s", reason)
    return QuantityResult(kind="missing", unit="", orientation="", warnings=(reason,))


def _sanity_warnings(measurements: MeasurementSet, defaults: AllowanceDefaults, **dims: float) -> Tuple[str, ...]:
    found = []
    for name, cm in dims.items():
        message = check_plausible(name, cm, measurements.unit, defaults.sanity_floor_mm)
        if message:
            found.append(message)
    return tuple(found)


def _orientation_preference(measurements: MeasurementSet) -> str:
    if measurements.flag("fabric_rotated"):
        return "railroaded"
    hint = (measurements.text("orientation") or "").lower()
    if hint in _RAILROAD_HINTS:
        return "railroaded"
    if hint in _AUTO_HINTS:
        return "auto"
    return "vertical"


def linear_quantity(
    width_cm: float,
    height_cm: float,
    allowances: Allowances,
    *,
    railroaded: bool = False,
    uses_leftover: bool = False,
) -> QuantityResult:
    """Curtain fabric in metres, vertical or railroaded.

    ``width_cm`` and ``height_cm`` are the finished rail width and drop.
    """
    a = allowances
    steps: List[str] = []
    warnings: List[str] = []

    drop_total = height_cm + a.header_hem_cm + a.bottom_hem_cm + a.pooling_cm
    steps.append(
        f"Total drop: {height_cm:g} + {a.header_hem_cm:g} (header) + {a.bottom_hem_cm:g} (bottom)"
        f" + {a.pooling_cm:g} (pooling) = {drop_total:g}cm"
    )
    if a.vertical_repeat_cm > 0:
        drop_total = round_up_to_repeat(drop_total, a.vertical_repeat_cm)
        steps.append(f"Drop rounded to {a.vertical_repeat_cm:g}cm pattern repeat = {drop_total:g}cm")

    required_width = (width_cm + a.overlap_cm) * a.fullness_ratio
    steps.append(f"Required width: ({width_cm:g} + {a.overlap_cm:g} overlap) x {a.fullness_ratio:g} fullness = {required_width:g}cm")
    side_hems = a.side_hem_cm * 2 * a.panel_multiplier
    returns = a.return_left_cm + a.return_right_cm
    total_width = required_width + side_hems + returns
    steps.append(f"Total width: {required_width:g} + {side_hems:g} (side hems) + {returns:g} (returns) = {total_width:g}cm")
    if a.horizontal_repeat_cm > 0:
        total_width = round_up_to_repeat(total_width, a.horizontal_repeat_cm)
        steps.append(f"Width rounded to {a.horizontal_repeat_cm:g}cm pattern repeat = {total_width:g}cm")

    fabric_width = a.fabric_width_cm
    if fabric_width is None:
        warnings.append("Fabric width unknown; treating the treatment as a single width")
        logger.warning("Fabric width unknown; treating %.1fcm as a single width", total_width)
        fabric_width = total_width

    if railroaded:
        drops_per_width = int(math.floor(fabric_width / drop_total)) if drop_total > 0 else 0
        if drops_per_width < 1:
            message = f"Fabric width {fabric_width:g}cm is narrower than the {drop_total:g}cm drop; using vertical orientation"
            logger.warning("Cannot railroad: %s", message)
            warnings.append(message)
            railroaded = False

    common = dict(
        kind="linear",
        unit="m",
        fullness_ratio=a.fullness_ratio,
        panel_count=a.panel_multiplier,
        width_cm=width_cm,
        height_cm=height_cm,
        required_width_cm=required_width,
        total_width_cm=total_width,
        total_drop_cm=drop_total,
        effective_width_cm=total_width,
        effective_height_cm=drop_total,
    )

    if railroaded:
        pieces = max(1, int(math.ceil(total_width / fabric_width)))
        per_piece = _metres((total_width / pieces) / 100.0 * a.waste_factor)
        total = _metres(per_piece * pieces)
        steps.append(f"Drops per width: floor({fabric_width:g} / {drop_total:g}) = {drops_per_width}")
        steps.append(f"Horizontal pieces: ceil({total_width:g} / {fabric_width:g}) = {pieces}")
        steps.append(f"Per piece: {total_width:g} / {pieces} / 100 x {a.waste_factor:g} = {per_piece:g}m")
        leftover = uses_leftover and pieces > 1
        if leftover:
            steps.append(f"Leftover used for remaining pieces: charging {per_piece:g}m of {total:g}m")
        else:
            steps.append(f"Total fabric: {per_piece:g} x {pieces} = {total:g}m")
        return QuantityResult(
            orientation="railroaded",
            per_piece_quantity=per_piece,
            total_quantity=total,
            pieces_required=pieces,
            pieces_charged=1 if leftover else pieces,
            widths_required=pieces,
            drops_per_width=drops_per_width,
            seams_count=pieces - 1,
            total_length_m=per_piece if leftover else total,
            uses_leftover=leftover,
            steps=tuple(steps),
            warnings=tuple(warnings),
            **common,
        )

    widths = max(1, int(math.ceil(total_width / fabric_width - 1e-9)))
    seams = widths - 1
    seam_cm = seams * a.seam_hem_cm * 2
    raw_cm = widths * drop_total + seam_cm
    total = _metres(raw_cm / 100.0 * a.waste_factor)
    steps.append(f"Widths required: ceil({total_width:g} / {fabric_width:g}) = {widths}")
    steps.append(f"Seam allowance: {seams} seam(s) x {a.seam_hem_cm:g} x 2 = {seam_cm:g}cm")
    steps.append(f"Total fabric: ({widths} x {drop_total:g} + {seam_cm:g}) / 100 x {a.waste_factor:g} = {total:g}m")
    return QuantityResult(
        orientation="vertical",
        per_piece_quantity=_metres(drop_total / 100.0),
        total_quantity=total,
        pieces_required=widths,
        pieces_charged=widths,
        widths_required=widths,
        drops_per_width=1,
        seams_count=seams,
        total_length_m=total,
        steps=tuple(steps),
        warnings=tuple(warnings),
        **common,
    )


def choose_orientation(
    width_cm: float,
    height_cm: float,
    allowances: Allowances,
    *,
    preference: str = "vertical",
    uses_leftover: bool = False,
) -> QuantityResult:
    """Price both roll directions and keep the requested one, or the cheaper under ``auto``.

    Railroading is only compared when the fabric width is known and the drop
    fits across it. Ties go to vertical.
    """
    vertical = linear_quantity(width_cm, height_cm, allowances, uses_leftover=uses_leftover)
    fabric_width = allowances.fabric_width_cm
    fits_across = fabric_width is not None and vertical.total_drop_cm <= fabric_width
    railroaded = None
    if preference == "railroaded" or fits_across:
        railroaded = linear_quantity(width_cm, height_cm, allowances, railroaded=True, uses_leftover=uses_leftover)
    feasible = railroaded is not None and railroaded.orientation == "railroaded"

    recommended = "vertical"
    if feasible and railroaded.charged_quantity < vertical.charged_quantity:
        recommended = "railroaded"
    if preference == "auto":
        preference = recommended
        logger.debug("Auto orientation picked %s", recommended)

    # an infeasible railroad request has already fallen back to vertical with a warning
    chosen = railroaded if preference == "railroaded" else vertical
    alternative = None
    if feasible:
        alternative = vertical if chosen is railroaded else railroaded

    steps = chosen.steps
    if alternative is not None:
        steps += (
            f"{alternative.orientation.capitalize()} alternative: {alternative.charged_quantity:g}m;"
            f" recommended {recommended}",
        )
    return replace(
        chosen,
        recommended_orientation=recommended,
        alternative_quantity=alternative.charged_quantity if alternative is not None else None,
        steps=steps,
    )


def area_quantity(width_cm: float, height_cm: float, allowances: Allowances) -> QuantityResult:
    """Blind, shade and shutter quantity in square metres."""

    a = allowances
    effective_width = width_cm + a.side_hem_cm * 2
    effective_height = height_cm + a.header_hem_cm + a.bottom_hem_cm
    sqm = effective_width * effective_height / 10000.0 * a.waste_factor
    pieces = 2 if a.panel_multiplier > 1 else 1
    sqm *= pieces
    sqm = round(sqm, 4)

    widths = 1
    if a.fabric_width_cm:
        widths = max(1, int(math.ceil(effective_width / a.fabric_width_cm - 1e-9)))
    length_m = _metres(widths * effective_height / 100.0 * a.waste_factor * pieces)

    steps = (
        f"Effective width: {width_cm:g} + {a.side_hem_cm:g} x 2 = {effective_width:g}cm",
        f"Effective height: {height_cm:g} + {a.header_hem_cm:g} + {a.bottom_hem_cm:g} = {effective_height:g}cm",
        f"Area: {effective_width:g} x {effective_height:g} / 10000 x {a.waste_factor:g}"
        + (f" x {pieces}" if pieces > 1 else "")
        + f" = {sqm:g}sqm",
    )
    return QuantityResult(
        kind="area",
        unit="sqm",
        orientation="area",
        per_piece_quantity=round(sqm / pieces, 4),
        total_quantity=sqm,
        pieces_required=pieces,
        pieces_charged=pieces,
        widths_required=widths,
        drops_per_width=1,
        panel_count=pieces,
        fullness_ratio=1.0,
        width_cm=width_cm,
        height_cm=height_cm,
        required_width_cm=width_cm,
        total_width_cm=effective_width,
        total_drop_cm=effective_height,
        effective_width_cm=effective_width,
        effective_height_cm=effective_height,
        total_length_m=length_m,
        steps=steps,
    )


def wallpaper_quantity(
    wall_width_cm: float,
    wall_height_cm: float,
    allowances: Allowances,
    *,
    roll_width_cm: float,
    roll_length_cm: float,
) -> QuantityResult:
    """Whole rolls needed to paper a wall."""

    a = allowances
    repeat = a.vertical_repeat_cm
    strip_length = wall_height_cm
    if repeat > 0:
        strip_length = math.ceil((wall_height_cm + repeat) / repeat) * repeat
    strips_per_roll = int(math.floor(roll_length_cm / strip_length))
    warnings: Tuple[str, ...] = ()
    if strips_per_roll < 1:
        message = f"Strip length {strip_length:g}cm exceeds roll length {roll_length_cm:g}cm; one strip per roll"
        logger.warning("Wallpaper: %s", message)
        warnings = (message,)
        strips_per_roll = 1
    strips = max(1, int(math.ceil(wall_width_cm / roll_width_cm - 1e-9)))
    rolls_exact = int(math.ceil(strips / strips_per_roll))
    rolls = int(math.ceil(rolls_exact * a.waste_factor - 1e-9))
    length_m = _metres(strips * strip_length / 100.0)

    steps = (
        f"Strip length: {strip_length:g}cm" + (f" (wall {wall_height_cm:g} + {repeat:g} repeat)" if repeat > 0 else ""),
        f"Strips per roll: floor({roll_length_cm:g} / {strip_length:g}) = {strips_per_roll}",
        f"Strips: ceil({wall_width_cm:g} / {roll_width_cm:g}) = {strips}",
        f"Rolls: ceil(ceil({strips} / {strips_per_roll}) x {a.waste_factor:g}) = {rolls}",
    )
    return QuantityResult(
        kind="rolls",
        unit="roll",
        orientation="wallpaper",
        per_piece_quantity=1.0,
        total_quantity=float(rolls),
        pieces_required=strips,
        pieces_charged=strips,
        widths_required=strips,
        drops_per_width=strips_per_roll,
        width_cm=wall_width_cm,
        height_cm=wall_height_cm,
        required_width_cm=wall_width_cm,
        total_width_cm=wall_width_cm,
        total_drop_cm=strip_length,
        effective_width_cm=wall_width_cm,
        effective_height_cm=strip_length,
        total_length_m=length_m,
        steps=steps,
        warnings=warnings,
    )


def calculate_quantity(
    category: str,
    template: Optional[TreatmentTemplate],
    fabric: Optional[FabricItem],
    measurements: MeasurementSet,
    defaults: Optional[AllowanceDefaults] = None,
) -> QuantityResult:
    """Dispatch on the treatment kind; a missing width or height short-circuits."""

    defaults = defaults or AllowanceDefaults()
    kind = treatment_kind(category)

    if kind == "rolls":
        width = _dimension(measurements, "wall_width", "rail_width", "width")
        height = _dimension(measurements, "wall_height", "drop", "height")
    else:
        width = _dimension(measurements, "rail_width", "width")
        height = _dimension(measurements, "drop", "height")
    if width is None or width <= 0:
        return missing_measurement("width is missing or not positive")
    if height is None or height <= 0:
        return missing_measurement("height is missing or not positive")

    sanity = _sanity_warnings(measurements, defaults, width=width, height=height)
    allowances = resolve_allowances(template, fabric, measurements, defaults, linear=kind == "linear")

    if kind == "linear":
        result = choose_orientation(
            width,
            height,
            allowances,
            preference=_orientation_preference(measurements),
            uses_leftover=measurements.flag("uses_leftover_for_horizontal"),
        )
    elif kind == "rolls":
        roll_width = (fabric.width_cm if fabric and fabric.width_cm else None) or defaults.roll_width_cm
        roll_length = (fabric.roll_length_cm if fabric and fabric.roll_length_cm else None) or defaults.roll_length_cm
        result = wallpaper_quantity(width, height, allowances, roll_width_cm=roll_width, roll_length_cm=roll_length)
    else:
        result = area_quantity(width, height, allowances)

    if sanity:
        result = replace(result, warnings=sanity + result.warnings)
    return result


__all__ = [
    "Allowances",
    "POOLING_PRESETS_CM",
    "panel_count",
    "treatment_kind",
    "resolve_allowances",
    "round_up_to_repeat",
    "missing_measurement",
    "linear_quantity",
    "choose_orientation",
    "area_quantity",
    "wallpaper_quantity",
    "calculate_quantity",
]
