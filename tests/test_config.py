from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

from drapecost.config import AllowanceDefaults, load_config


def test_defaults_without_environment():
    cfg = load_config({}, None)
    assert cfg.allowances == AllowanceDefaults()
    assert cfg.default_markup == 0
    assert cfg.cache_size == 256
    assert cfg.display_unit == "cm"
    assert cfg.policy_file is None
    assert cfg.log_level == "INFO"


def test_environment_values(tmp_path: Path):
    env = {
        "DRAPECOST_HEADER_HEM_CM": "10",
        "DRAPECOST_BOTTOM_HEM_CM": "12.5",
        "DRAPECOST_SEAM_HEM_CM": "2",
        "DRAPECOST_WASTE_PERCENT": "5%",
        "DRAPECOST_DEFAULT_MARKUP": "45",
        "DRAPECOST_CACHE_SIZE": "16",
        "DRAPECOST_DISPLAY_UNIT": "inches",
        "DRAPECOST_POLICY_FILE": str(tmp_path / "policy.yaml"),
        "DRAPECOST_ROLL_WIDTH_CM": "68",
        "DRAPECOST_LOG_LEVEL": "warning",
    }
    cfg = load_config(env, None)
    assert cfg.allowances.header_hem_cm == 10
    assert cfg.allowances.bottom_hem_cm == 12.5
    assert cfg.allowances.seam_hem_cm == 2
    assert cfg.allowances.waste_percent == 5
    assert cfg.allowances.roll_width_cm == 68
    assert cfg.default_markup == 45
    assert cfg.cache_size == 16
    assert cfg.display_unit == "inch"
    assert cfg.policy_file == (tmp_path / "policy.yaml").resolve()
    assert cfg.log_level == "WARNING"


def test_bad_values_fall_back():
    env = {
        "DRAPECOST_HEADER_HEM_CM": "-4",
        "DRAPECOST_CACHE_SIZE": "lots",
        "DRAPECOST_DISPLAY_UNIT": "furlong",
        "DRAPECOST_LOG_LEVEL": "chatty",
    }
    cfg = load_config(env, None)
    assert cfg.allowances.header_hem_cm == 8
    assert cfg.cache_size == 256
    assert cfg.display_unit == "cm"
    assert cfg.log_level == "INFO"


def test_cli_overrides_environment(tmp_path: Path):
    env = {"DRAPECOST_DEFAULT_MARKUP": "45", "DRAPECOST_DISPLAY_UNIT": "mm", "DRAPECOST_WASTE_PERCENT": "5"}
    args = SimpleNamespace(
        policy=str(tmp_path / "cli.json"),
        unit="m",
        default_markup=30.0,
        waste_percent=0.0,
        verbose=True,
    )
    cfg = load_config(env, args)
    assert cfg.policy_file == (tmp_path / "cli.json").resolve()
    assert cfg.display_unit == "m"
    assert cfg.default_markup == 30
    assert cfg.allowances.waste_percent == 0
    assert cfg.verbose
    assert cfg.log_level == "DEBUG"


def test_verbose_environment_flag():
    cfg = load_config({"DRAPECOST_VERBOSE": "yes"}, None)
    assert cfg.verbose
    assert cfg.log_level == "DEBUG"
