from __future__ import annotations

import pytest

from drapecost.markup import price_line
from drapecost.models import FabricItem, MeasurementSet, SelectedOption, TreatmentTemplate
from drapecost.price_logic import (
    CatalogHeadingProvider,
    OptionContext,
    RawIdentifierProvider,
    default_heading_providers,
    fabric_cost,
    heading_cost,
    lining_cost,
    manufacturing_cost,
    option_cost,
    options_cost,
    resolve_heading,
)
from drapecost.quantity import calculate_quantity


def _measure(**values) -> MeasurementSet:
    return MeasurementSet.from_dict(values, "cm")


def _blind(**overrides) -> TreatmentTemplate:
    raw = {
        "id": "bare-blind",
        "name": "Bare blind",
        "treatment_category": "roller_blinds",
        "pricing_type": "per_panel",
        "machine_price_per_panel": 50,
        "header_hem_cm": 0,
        "bottom_hem_cm": 0,
        "side_hem_cm": 0,
        "waste_percent": 0,
    }
    raw.update(overrides)
    return TreatmentTemplate.from_dict(raw)


@pytest.fixture
def curtain_quantity(curtain_template, linen):
    return calculate_quantity("curtains", curtain_template, linen, _measure(rail_width=150, drop=200))


def test_grid_priced_fabric_zeroes_manufacturing(grid_payload):
    template = _blind()
    fabric = FabricItem.from_dict({"id": "roller-fab", "name": "Sunscreen", "unit_price": 99, "pricing_grid": grid_payload})
    m = _measure(rail_width=100, drop=150)
    quantity = calculate_quantity("roller_blinds", template, fabric, m)

    pricing = fabric_cost("roller_blinds", fabric, quantity)
    assert pricing.used_grid
    assert pricing.line.cost == 250
    assert pricing.line.pricing_method == "pricing_grid"

    making = manufacturing_cost(template, quantity, m, fabric_used_grid=True, category="roller_blinds")
    assert making.cost == 0


def test_grid_markup_is_not_applied_twice(grid_payload):
    fabric = FabricItem.from_dict({"id": "f", "pricing_grid": grid_payload, "grid_markup": 20})
    quantity = calculate_quantity("roller_blinds", _blind(), fabric, _measure(rail_width=100, drop=150))
    line = fabric_cost("roller_blinds", fabric, quantity).line
    assert line.cost == 300
    assert line.markup_base == 250

    priced = price_line(line, None)
    assert priced.markup_source == "grid"
    assert priced.selling_price == 300


def test_product_markup_on_grid_fabric_applies_to_marked_up_cost(grid_payload):
    fabric = FabricItem.from_dict(
        {"id": "f", "pricing_grid": grid_payload, "grid_markup": 20, "product_markup": 10}
    )
    quantity = calculate_quantity("roller_blinds", _blind(), fabric, _measure(rail_width=100, drop=150))
    line = fabric_cost("roller_blinds", fabric, quantity).line

    priced = price_line(line, None)
    assert priced.markup_source == "product"
    assert priced.cost == 300
    assert priced.selling_price == pytest.approx(330.0)
    assert priced.selling_price >= priced.cost


def test_invalid_grid_falls_back_to_flat_price():
    bad_grid = {"widthColumns": [100], "dropRows": [{"drop": 100, "prices": [0]}]}
    fabric = FabricItem.from_dict({"id": "f", "unit_price": 40, "pricing_method": "per_sqm", "pricing_grid": bad_grid})
    assert fabric.pricing_grid is None
    quantity = calculate_quantity("roller_blinds", _blind(), fabric, _measure(rail_width=100, drop=150))
    pricing = fabric_cost("roller_blinds", fabric, quantity)
    assert not pricing.used_grid
    assert pricing.line.unit == "sqm"
    assert pricing.line.cost == pytest.approx(60.0)


def test_curtain_fabric_priced_per_metre(curtain_quantity, linen):
    line = fabric_cost("curtains", linen, curtain_quantity).line
    assert line.unit == "m"
    assert line.cost == pytest.approx(7.0245 * 40, abs=0.01)


def test_cost_price_preferred_over_selling_price(curtain_quantity):
    fabric = FabricItem.from_dict({"id": "f", "unit_price": 50, "cost_price": 30, "selling_price": 50, "width_cm": 140})
    line = fabric_cost("curtains", fabric, curtain_quantity).line
    assert line.unit_price == 30
    assert line.cost == pytest.approx(7.0245 * 30, abs=0.01)
    assert line.implied_markup == pytest.approx(66.6667, abs=1e-3)


def test_missing_fabric_price_costs_zero_with_warning(curtain_quantity):
    fabric = FabricItem.from_dict({"id": "nameless", "width_cm": 140})
    line = fabric_cost("curtains", fabric, curtain_quantity).line
    assert line.cost == 0
    assert line.warnings


def test_no_fabric_no_line(curtain_quantity):
    assert fabric_cost("curtains", None, curtain_quantity).line is None


def test_per_metre_manufacturing_by_tier(curtain_template, curtain_quantity):
    machine = manufacturing_cost(curtain_template, curtain_quantity, _measure(), category="curtains")
    hand = manufacturing_cost(curtain_template, curtain_quantity, _measure(manufacturing_type="hand"), category="curtains")
    assert machine.cost == pytest.approx(7.0245 * 20, abs=0.01)
    assert hand.cost == pytest.approx(7.0245 * 30, abs=0.01)


def test_heading_specific_price_overrides_method(curtain_template, curtain_quantity):
    line = manufacturing_cost(curtain_template, curtain_quantity, _measure(selected_heading="wave"), category="curtains")
    assert line.unit_price == 25
    assert line.cost == pytest.approx(7.0245 * 25, abs=0.01)


def test_per_panel_manufacturing(blind_template):
    single = calculate_quantity("roller_blinds", blind_template, None, _measure(rail_width=100, drop=150))
    double = calculate_quantity("roller_blinds", blind_template, None, _measure(rail_width=100, drop=150, curtain_type="double"))
    assert manufacturing_cost(blind_template, single, _measure()).cost == 50
    assert manufacturing_cost(blind_template, double, _measure()).cost == 100
    assert manufacturing_cost(blind_template, single, _measure(manufacturing_type="hand")).cost == 70


def test_hand_tier_falls_back_to_machine_price():
    template = _blind(machine_price_per_panel=55)
    quantity = calculate_quantity("roller_blinds", template, None, _measure(rail_width=100, drop=150))
    assert manufacturing_cost(template, quantity, _measure(manufacturing_type="hand")).cost == 55


def test_per_drop_manufacturing(curtain_quantity):
    template = TreatmentTemplate.from_dict(
        {"id": "t", "treatment_category": "curtains", "pricing_type": "per_drop", "machine_price_per_drop": 15}
    )
    line = manufacturing_cost(template, curtain_quantity, _measure())
    assert line.quantity == 3
    assert line.cost == 45


def test_height_range_manufacturing():
    template = _blind(
        pricing_type="height_range",
        height_price_ranges=[
            {"min_height": 0, "max_height": 200, "price": 30},
            {"min_height": 201, "max_height": 300, "price": 45, "hand_price": 60},
        ],
    )
    quantity = calculate_quantity("roller_blinds", template, None, _measure(rail_width=100, drop=250))
    assert manufacturing_cost(template, quantity, _measure()).cost == pytest.approx(112.5)
    assert manufacturing_cost(template, quantity, _measure(manufacturing_type="hand")).cost == pytest.approx(150.0)

    too_tall = calculate_quantity("roller_blinds", template, None, _measure(rail_width=100, drop=400))
    line = manufacturing_cost(template, too_tall, _measure())
    assert line.cost == 0
    assert line.warnings


def test_manufacturing_grid(grid_payload):
    template = _blind(pricing_type="pricing_grid", pricing_grid=grid_payload)
    quantity = calculate_quantity("roller_blinds", template, None, _measure(rail_width=100, drop=150))
    assert manufacturing_cost(template, quantity, _measure()).cost == 250


def test_base_price_added_to_manufacturing():
    template = _blind(pricing_type="fixed", base_price=35)
    quantity = calculate_quantity("roller_blinds", template, None, _measure(rail_width=100, drop=150))
    line = manufacturing_cost(template, quantity, _measure())
    assert line.cost == 35
    assert "base" in line.description


def test_selected_pricing_method_wins():
    template = _blind(
        pricing_methods=[{"id": "premium", "name": "Premium", "pricing_type": "per_panel", "machine_price_per_panel": 80}]
    )
    quantity = calculate_quantity("roller_blinds", template, None, _measure(rail_width=100, drop=150))
    assert manufacturing_cost(template, quantity, _measure(selected_pricing_method="premium")).cost == 80
    assert manufacturing_cost(template, quantity, _measure(selected_pricing_method="missing")).cost == 50


def test_no_template_no_manufacturing(curtain_quantity):
    assert manufacturing_cost(None, curtain_quantity, _measure()) is None


def test_heading_cost_from_settings_catalog(curtain_template, curtain_quantity):
    providers = default_heading_providers({"wave": {"name": "Wave", "price_per_metre": 5}}, None)
    line = heading_cost("curtains", curtain_template, curtain_quantity, _measure(selected_heading="wave"), providers)
    assert line.name == "Wave"
    assert line.cost == pytest.approx(10 + (2 + 5) * 7.0245, abs=0.01)


def test_heading_falls_back_to_raw_identifier(curtain_template, curtain_quantity):
    line = heading_cost("curtains", curtain_template, curtain_quantity, _measure(selected_heading="pinch"))
    assert line.name == "pinch"
    assert line.cost == pytest.approx(10 + 2 * 7.0245, abs=0.01)


def test_heading_skipped_when_not_applicable(curtain_template, curtain_quantity):
    assert heading_cost("curtains", curtain_template, curtain_quantity, _measure(selected_heading="none")) is None
    assert heading_cost("roller_blinds", curtain_template, curtain_quantity, _measure(selected_heading="wave")) is None


def test_heading_provider_order():
    providers = [
        CatalogHeadingProvider("settings", {"wave": "Wave (settings)"}),
        CatalogHeadingProvider("inventory", {"wave": "Wave (inventory)", "eyelet": "Eyelet"}),
        RawIdentifierProvider(),
    ]
    assert resolve_heading("wave", providers).name == "Wave (settings)"
    assert resolve_heading("eyelet", providers).name == "Eyelet"
    assert resolve_heading("ripple", providers).name == "ripple"


def test_lining_cost(curtain_template, curtain_quantity):
    line = lining_cost("curtains", curtain_template, curtain_quantity, _measure(selected_lining="blackout"))
    assert line.name == "Blackout"
    assert line.cost == pytest.approx(7.0245 * 10 + 5, abs=0.01)
    assert lining_cost("curtains", curtain_template, curtain_quantity, _measure(selected_lining="thermal")) is None
    assert lining_cost("roller_blinds", curtain_template, curtain_quantity, _measure(selected_lining="blackout")) is None


def test_precomputed_option_used_verbatim(curtain_quantity):
    option = SelectedOption.from_dict(
        {"id": "tieback", "name": "Tieback", "price": 5, "pricingMethod": "per-meter", "calculated_price": 42.5}
    )
    line = option_cost(option, OptionContext("curtains", curtain_quantity))
    assert line.cost == 42.5
    assert line.key == "option:tieback"


def test_per_meter_option_on_curtain_and_blind(curtain_quantity, blind_template):
    option = SelectedOption.from_dict({"id": "trim", "name": "Trim", "price": 3, "pricing_method": "per_metre"})
    assert option_cost(option, OptionContext("curtains", curtain_quantity)).cost == pytest.approx(7.0245 * 3, abs=0.01)

    blind_q = calculate_quantity("roller_blinds", blind_template, None, _measure(rail_width=100, drop=150))
    assert option_cost(option, OptionContext("roller_blinds", blind_q)).cost == pytest.approx(1.08 * 3)


def test_percentage_option_uses_fabric_cost(curtain_quantity):
    option = SelectedOption.from_dict({"id": "rush", "name": "Rush", "price": 10, "pricing_method": "percentage"})
    assert option_cost(option, OptionContext("curtains", curtain_quantity, fabric_cost=200)).cost == 20


def test_lining_option_ignored_on_blinds(blind_template):
    quantity = calculate_quantity("roller_blinds", blind_template, None, _measure(rail_width=100, drop=150))
    lining = SelectedOption.from_dict({"id": "l", "name": "Blackout lining", "price": 30, "category": "lining"})
    motor = SelectedOption.from_dict({"id": "motor", "name": "Motor", "price": 120, "category": "hardware"})
    lines = options_cost([lining, motor], OptionContext("roller_blinds", quantity))
    assert [line.key for line in lines] == ["hardware:motor"]
    assert lines[0].category == "hardware"
    assert lines[0].cost == 120


def test_width_only_option_grid(blind_template):
    quantity = calculate_quantity("roller_blinds", blind_template, None, _measure(rail_width=100, drop=150))
    option = SelectedOption.from_dict(
        {
            "id": "valance",
            "name": "Valance",
            "pricing_method": "pricing-grid",
            "pricing_grid": [{"width": 60, "price": 30}, {"width": 120, "price": 45}, {"width": 180, "price": 60}],
        }
    )
    assert option_cost(option, OptionContext("roller_blinds", quantity)).cost == 45
