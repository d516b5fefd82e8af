from __future__ import annotations

import pytest

from drapecost.config import AllowanceDefaults
from drapecost.engine import TreatmentEngine, calculate_treatment, input_digest
from drapecost.models import FabricItem, MarkupPolicy, MeasurementSet, SelectedOption, TreatmentTemplate


def _measure(**values) -> MeasurementSet:
    return MeasurementSet.from_dict(values, "cm")


def test_curtain_totals_sum_components(curtain_template, linen):
    m = _measure(rail_width=150, drop=200, selected_lining="blackout", selected_heading="pinch")
    result = calculate_treatment(curtain_template, linen, m, category="curtains")
    assert result.ok
    assert result.fabric_cost == pytest.approx(280.98, abs=0.01)
    assert result.manufacturing_cost == pytest.approx(140.49, abs=0.01)
    parts = result.fabric_cost + result.lining_cost + result.manufacturing_cost + result.heading_cost + result.options_cost
    assert result.total_cost == pytest.approx(parts, abs=0.01)
    assert result.linear_meters_or_sqm == pytest.approx(7.0245)
    assert result.quantity_unit == "m"
    assert result.pieces_required == 3
    assert result.fullness_ratio == 2
    assert result.quantity.steps


def test_category_taken_from_template(curtain_template, linen):
    result = calculate_treatment(curtain_template, linen, _measure(rail_width=150, drop=200))
    assert result.orientation == "vertical"


def test_grid_scenario_end_to_end(grid_payload):
    template = TreatmentTemplate.from_dict(
        {
            "id": "roller",
            "treatment_category": "roller_blinds",
            "pricing_type": "per_panel",
            "machine_price_per_panel": 50,
            "header_hem_cm": 0,
            "bottom_hem_cm": 0,
            "side_hem_cm": 0,
        }
    )
    fabric = FabricItem.from_dict({"id": "sunscreen", "pricing_grid": grid_payload})
    result = calculate_treatment(template, fabric, _measure(rail_width=100, drop=150))
    assert result.fabric_cost == 250
    assert result.manufacturing_cost == 0
    assert result.total_cost == 250


def test_policy_markup_applied_per_line(curtain_template, linen):
    policy = MarkupPolicy(default_percent=10, category_percents={"fabric": 100, "manufacturing": 50})
    result = calculate_treatment(curtain_template, linen, _measure(rail_width=150, drop=200), policy=policy)
    by_key = {line.key: line for line in result.lines}
    assert by_key["fabric"].selling_price == pytest.approx(by_key["fabric"].cost * 2, abs=0.01)
    assert by_key["manufacturing"].selling_price == pytest.approx(by_key["manufacturing"].cost * 1.5, abs=0.01)
    assert result.selling_price == pytest.approx(sum(line.selling_price for line in result.lines), abs=0.01)
    assert result.effective_markup_percent > 50


def test_options_and_hardware_roll_into_options_cost(curtain_template, linen):
    options = [
        SelectedOption.from_dict({"id": "track", "name": "Track", "price": 80, "category": "hardware"}),
        SelectedOption.from_dict({"id": "tieback", "name": "Tieback", "price": 12, "quantity": 2}),
    ]
    result = calculate_treatment(curtain_template, linen, _measure(rail_width=150, drop=200), options)
    assert result.options_cost == pytest.approx(104.0)
    assert [line.key for line in result.lines][-2:] == ["hardware:track", "option:tieback"]


def test_missing_measurement_is_a_sentinel(curtain_template, linen):
    result = calculate_treatment(curtain_template, linen, _measure(rail_width=150))
    assert result.status == "missing_measurement"
    assert not result.ok
    assert result.total_cost == 0
    assert result.lines == ()
    assert result.warnings


def test_engine_memoises_identical_snapshots(curtain_template, linen):
    engine = TreatmentEngine()
    first = engine.calculate(curtain_template, linen, _measure(rail_width=150, drop=200))
    second = engine.calculate(curtain_template, linen, _measure(rail_width=150, drop=200))
    assert first is second
    assert (engine.hits, engine.misses) == (1, 1)
    assert first.input_key


def test_key_ignores_measurement_order(curtain_template, linen):
    engine = TreatmentEngine()
    a = MeasurementSet(values={"rail_width": 150, "drop": 200})
    b = MeasurementSet(values={"drop": 200, "rail_width": 150})
    assert engine.input_key(curtain_template, linen, a) == engine.input_key(curtain_template, linen, b)


def test_key_tracks_every_input(curtain_template, linen, grid_payload):
    engine = TreatmentEngine()
    m = _measure(rail_width=150, drop=200)
    base = engine.input_key(curtain_template, linen, m)
    assert engine.input_key(curtain_template, linen, _measure(rail_width=151, drop=200)) != base
    assert engine.input_key(curtain_template, linen, m, policy=MarkupPolicy(default_percent=5)) != base
    gridded = FabricItem.from_dict({"id": "fab-1", "name": "Linen", "unit_price": 40, "width_cm": 140, "pricing_grid": grid_payload})
    assert engine.input_key(curtain_template, gridded, m) != base


def test_input_digest_stable_for_equal_grids(grid_payload):
    one = FabricItem.from_dict({"id": "f", "pricing_grid": grid_payload})
    two = FabricItem.from_dict({"id": "f", "pricing_grid": dict(grid_payload)})
    assert input_digest(one) == input_digest(two)


def test_engine_cache_is_bounded(curtain_template, linen):
    engine = TreatmentEngine(cache_size=1)
    engine.calculate(curtain_template, linen, _measure(rail_width=150, drop=200))
    engine.calculate(curtain_template, linen, _measure(rail_width=160, drop=200))
    assert len(engine) == 1
    engine.clear()
    assert len(engine) == 0
    assert engine.hits == 0


def test_engine_without_cache(curtain_template, linen):
    engine = TreatmentEngine(cache_size=0)
    engine.calculate(curtain_template, linen, _measure(rail_width=150, drop=200))
    assert len(engine) == 0


def test_engine_uses_configured_allowances():
    template = TreatmentTemplate.from_dict({"id": "bare", "treatment_category": "roller_blinds", "pricing_type": "fixed"})
    engine = TreatmentEngine(cache_size=0)
    engine.defaults = AllowanceDefaults(header_hem_cm=0, bottom_hem_cm=0)
    result = engine.calculate(template, None, _measure(rail_width=100, drop=100))
    assert result.linear_meters_or_sqm == pytest.approx(1.0)
