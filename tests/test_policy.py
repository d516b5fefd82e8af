from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
import yaml

from drapecost.errors import PolicyValidationError
from drapecost.policy import (
    apply_policy_defaults,
    catalog_from_dict,
    load_catalog,
    load_markup_policy,
    markup_policy_from_dict,
    validate_document,
)


def test_yaml_policy_loaded(tmp_path: Path):
    path = tmp_path / "policy.yaml"
    path.write_text(
        yaml.safe_dump({"default_markup_percentage": 40, "category_markups": {"Curtains": 45, "hardware": 25}}),
        encoding="utf-8",
    )
    policy = load_markup_policy(path)
    assert policy.default_percent == 40
    assert policy.for_category("curtains") == 45
    assert policy.for_category("hardware") == 25


def test_policy_default_comes_from_config_when_absent():
    policy = markup_policy_from_dict({"category_markups": {"blinds": 30}}, default_percent=12)
    assert policy.default_percent == 12


def test_invalid_policy_lists_problems():
    with pytest.raises(PolicyValidationError) as excinfo:
        markup_policy_from_dict({"default_markup_percentage": -5, "category_markups": {"curtains": "lots"}}, source="bad.json")
    assert excinfo.value.source == "bad.json"
    assert len(excinfo.value.problems) == 2


def test_apply_policy_defaults_only_fills_missing(tmp_path: Path, monkeypatch):
    path = tmp_path / "policy.json"
    path.write_text(
        json.dumps({"env_defaults": {"DRAPECOST_DEFAULT_MARKUP": 35, "DRAPECOST_DISPLAY_UNIT": "mm"}}),
        encoding="utf-8",
    )
    monkeypatch.setenv("DRAPECOST_DEFAULT_MARKUP", "")
    monkeypatch.setenv("DRAPECOST_DISPLAY_UNIT", "inch")
    apply_policy_defaults(path)
    assert os.environ["DRAPECOST_DEFAULT_MARKUP"] == "35"
    assert os.environ["DRAPECOST_DISPLAY_UNIT"] == "inch"


def test_apply_policy_defaults_ignores_missing_file(tmp_path: Path):
    apply_policy_defaults(tmp_path / "absent.json")


def test_catalog_round_trip(tmp_path: Path, grid_payload):
    payload = {
        "templates": [
            {"id": "tpl-1", "name": "Wave curtain", "treatment_category": "curtain", "pricing_type": "per_meter", "machine_price_per_meter": 22}
        ],
        "fabrics": [{"id": "fab-1", "name": "Sunscreen", "pricing_grid": grid_payload}],
        "headings": {"wave": {"name": "Wave", "price_per_metre": 4}},
    }
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    catalog = load_catalog(path)
    template = catalog.template("tpl-1")
    assert template.category == "curtains"
    assert template.pricing.pricing_type == "per_metre"
    assert template.pricing.tier_price("metre", "machine") == 22
    assert catalog.fabric("fab-1").pricing_grid.lookup(100, 150) == 250
    assert catalog.fabric("missing") is None
    assert catalog.headings["wave"]["name"] == "Wave"


def test_catalog_rejects_negative_prices():
    with pytest.raises(PolicyValidationError):
        catalog_from_dict({"fabrics": [{"id": "f", "unit_price": -1}]})


def test_quote_request_requires_measurements():
    with pytest.raises(PolicyValidationError):
        validate_document({"category": "curtains"}, "quote_request")
    validate_document({"category": "curtains", "measurements": {}}, "quote_request")
