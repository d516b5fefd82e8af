from __future__ import annotations

import pytest

from drapecost.models import FabricItem, TreatmentTemplate


@pytest.fixture
def curtain_template() -> TreatmentTemplate:
    return TreatmentTemplate.from_dict(
        {
            "id": "tpl-curtain",
            "name": "Pencil pleat curtain",
            "treatment_category": "curtains",
            "pricing_type": "per_metre",
            "machine_price_per_metre": 20,
            "hand_price_per_metre": 30,
            "fullness_ratio": 2,
            "header_hem_cm": 8,
            "bottom_hem_cm": 15,
            "side_hem_cm": 7.5,
            "seam_hem_cm": 0,
            "waste_percent": 5,
            "lining_types": [
                {"type": "blackout", "name": "Blackout", "price_per_metre": 10, "labour_per_curtain": 5},
            ],
            "heading_prices": {"wave": {"machine_price_per_metre": 25}},
            "heading_upcharge_per_curtain": 10,
            "heading_upcharge_per_metre": 2,
        }
    )


@pytest.fixture
def linen() -> FabricItem:
    return FabricItem.from_dict({"id": "fab-1", "name": "Linen", "unit_price": 40, "width_cm": 140})


@pytest.fixture
def blind_template() -> TreatmentTemplate:
    return TreatmentTemplate.from_dict(
        {
            "id": "tpl-roller",
            "name": "Roller blind",
            "treatment_category": "roller_blinds",
            "pricing_type": "per_panel",
            "machine_price_per_panel": 50,
            "hand_price_per_panel": 70,
            "header_hem_cm": 8,
            "bottom_hem_cm": 10,
            "side_hem_cm": 4,
            "waste_percent": 0,
        }
    )


@pytest.fixture
def grid_payload() -> dict:
    return {
        "widthColumns": [100, 200],
        "dropRows": [
            {"drop": 150, "prices": [250, 300]},
            {"drop": 250, "prices": [350, 400]},
        ],
    }
