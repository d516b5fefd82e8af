"""Unit conversion boundary between user display units and centimetres."""
from __future__ import annotations

import logging
from typing import Dict

logger = logging.getLogger(__name__)

# Centimetres per one unit.
CM_PER_UNIT: Dict[str, float] = {
    "mm": 0.1,
    "cm": 1.0,
    "m": 100.0,
    "inch": 2.54,
    "feet": 30.48,
    "yard": 91.44,
}

_UNIT_ALIASES = {
    "millimetre": "mm",
    "millimeter": "mm",
    "millimetres": "mm",
    "millimeters": "mm",
    "centimetre": "cm",
    "centimeter": "cm",
    "centimetres": "cm",
    "centimeters": "cm",
    "metre": "m",
    "meter": "m",
    "metres": "m",
    "meters": "m",
    "in": "inch",
    "inches": "inch",
    '"': "inch",
    "ft": "feet",
    "foot": "feet",
    "'": "feet",
    "yd": "yard",
    "yds": "yard",
    "yards": "yard",
}

SANITY_FLOOR_MM = 100.0


class UnknownUnitError(ValueError):
    """Raised when a unit code is not one of the supported linear units."""


def normalize_unit(unit: str | None) -> str:
    text = str(unit or "").strip().lower()
    text = _UNIT_ALIASES.get(text, text)
    if text not in CM_PER_UNIT:
        raise UnknownUnitError(f"Unsupported linear unit: {unit!r}")
    return text


def to_internal(value: float, from_unit: str) -> float:
    """Convert ``value`` expressed in ``from_unit`` into centimetres."""

    return float(value) * CM_PER_UNIT[normalize_unit(from_unit)]


def from_internal(cm: float, to_unit: str) -> float:
    """Convert a centimetre value back into ``to_unit``."""

    return float(cm) / CM_PER_UNIT[normalize_unit(to_unit)]


def metres_to_fabric_unit(metres: float, unit: str) -> float:
    """Express a fabric length given in metres in ``unit`` (metres or yards)."""

    return from_internal(float(metres) * 100.0, unit)


def is_plausible(cm: float, floor_mm: float = SANITY_FLOOR_MM) -> bool:
    """Return False when a converted measurement looks like a unit-entry slip."""

    return float(cm) * 10.0 >= floor_mm


def check_plausible(name: str, cm: float, unit: str, floor_mm: float = SANITY_FLOOR_MM) -> str | None:
    """Log and describe an implausibly small measurement; ``None`` when fine."""

    if cm <= 0 or is_plausible(cm, floor_mm):
        return None
    message = (
        f"{name}={from_internal(cm, unit):g}{unit} converts to {cm:g}cm, below the "
        f"{floor_mm:g}mm sanity floor; check the measurement unit"
    )
    logger.warning("Implausible measurement: %s", message)
    return message


__all__ = [
    "CM_PER_UNIT",
    "SANITY_FLOOR_MM",
    "UnknownUnitError",
    "normalize_unit",
    "to_internal",
    "from_internal",
    "metres_to_fabric_unit",
    "is_plausible",
    "check_plausible",
]
