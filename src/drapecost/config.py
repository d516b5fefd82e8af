from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from types import SimpleNamespace
from typing import Mapping, Optional

from .units import SANITY_FLOOR_MM, UnknownUnitError, normalize_unit


_BOOLEAN_TRUE = {"1", "true", "yes", "on"}
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class AllowanceDefaults:
    """Fallback allowances used when neither measurements nor template supply one."""

    header_hem_cm: float = 8.0
    bottom_hem_cm: float = 8.0
    side_hem_cm: float = 0.0
    seam_hem_cm: float = 1.5
    waste_percent: float = 0.0
    sanity_floor_mm: float = SANITY_FLOOR_MM
    roll_width_cm: float = 53.0
    roll_length_cm: float = 1000.0


@dataclass(frozen=True)
class Config:
    """Runtime configuration assembled from environment variables and CLI options."""

    allowances: AllowanceDefaults
    default_markup: float
    cache_size: int
    display_unit: str
    policy_file: Optional[Path]
    log_level: str = "INFO"
    verbose: bool = False


def _to_path(value: object | None) -> Optional[Path]:
    if value is None:
        return None
    if isinstance(value, Path):
        return value.expanduser().resolve()
    text = str(value).strip()
    if not text:
        return None
    return Path(text).expanduser().resolve()


def _to_int(value: object | None) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _to_float(value: object | None) -> Optional[float]:
    if value is None:
        return None
    text = str(value).replace("%", "").replace(",", "").strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _flag(value: object | None) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _BOOLEAN_TRUE


def _namespace(cli_args: object | None) -> SimpleNamespace:
    if cli_args is None:
        return SimpleNamespace()
    if isinstance(cli_args, SimpleNamespace):
        return cli_args
    if hasattr(cli_args, "__dict__"):
        return SimpleNamespace(**{k: v for k, v in vars(cli_args).items()})
    return SimpleNamespace()


def _non_negative(value: Optional[float], default: float) -> float:
    if value is None or value < 0:
        return default
    return value


def _unit_or_default(value: object | None, default: str = "cm") -> str:
    if value is None or not str(value).strip():
        return default
    try:
        return normalize_unit(str(value))
    except UnknownUnitError:
        logging.getLogger(__name__).warning("Ignoring unsupported display unit %r; using %s", value, default)
        return default


def load_config(env: Mapping[str, str], cli_args: object | None = None) -> Config:
    """Build a runtime :class:`Config` from environment variables and CLI options."""

    base = AllowanceDefaults()
    allowances = AllowanceDefaults(
        header_hem_cm=_non_negative(_to_float(env.get("DRAPECOST_HEADER_HEM_CM")), base.header_hem_cm),
        bottom_hem_cm=_non_negative(_to_float(env.get("DRAPECOST_BOTTOM_HEM_CM")), base.bottom_hem_cm),
        side_hem_cm=_non_negative(_to_float(env.get("DRAPECOST_SIDE_HEM_CM")), base.side_hem_cm),
        seam_hem_cm=_non_negative(_to_float(env.get("DRAPECOST_SEAM_HEM_CM")), base.seam_hem_cm),
        waste_percent=_non_negative(_to_float(env.get("DRAPECOST_WASTE_PERCENT")), base.waste_percent),
        sanity_floor_mm=_non_negative(_to_float(env.get("DRAPECOST_SANITY_FLOOR_MM")), base.sanity_floor_mm),
        roll_width_cm=_non_negative(_to_float(env.get("DRAPECOST_ROLL_WIDTH_CM")), base.roll_width_cm) or base.roll_width_cm,
        roll_length_cm=_non_negative(_to_float(env.get("DRAPECOST_ROLL_LENGTH_CM")), base.roll_length_cm) or base.roll_length_cm,
    )
    default_markup = _non_negative(_to_float(env.get("DRAPECOST_DEFAULT_MARKUP")), 0.0)
    cache_size = _to_int(env.get("DRAPECOST_CACHE_SIZE"))
    if cache_size is None or cache_size < 0:
        cache_size = 256
    display_unit = _unit_or_default(env.get("DRAPECOST_DISPLAY_UNIT"))
    policy_file = _to_path(env.get("DRAPECOST_POLICY_FILE"))
    log_level = str(env.get("DRAPECOST_LOG_LEVEL") or "INFO").strip().upper()
    if log_level not in _LOG_LEVELS:
        log_level = "INFO"
    verbose = _flag(env.get("DRAPECOST_VERBOSE"))
    if verbose:
        log_level = "DEBUG"

    cli_ns = _namespace(cli_args)
    if getattr(cli_ns, "policy", None):
        policy_file = _to_path(cli_ns.policy) or policy_file
    if getattr(cli_ns, "unit", None):
        display_unit = _unit_or_default(cli_ns.unit, display_unit)
    if getattr(cli_ns, "default_markup", None) is not None:
        default_markup = max(0.0, float(cli_ns.default_markup))
    if getattr(cli_ns, "waste_percent", None) is not None:
        allowances = replace(allowances, waste_percent=max(0.0, float(cli_ns.waste_percent)))
    if getattr(cli_ns, "verbose", False):
        verbose = True
        log_level = "DEBUG"

    return Config(
        allowances=allowances,
        default_markup=default_markup,
        cache_size=cache_size,
        display_unit=display_unit,
        policy_file=policy_file,
        log_level=log_level,
        verbose=verbose,
    )


__all__ = ["AllowanceDefaults", "Config", "load_config"]
