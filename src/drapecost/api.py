from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import Config, load_config
from .consistency import PersistenceRecord, ResultBinding, prepare_save
from .engine import TreatmentEngine
from .errors import InvalidRequestError, PolicyValidationError
from .models import (
    CalculationResult,
    FabricItem,
    MarkupPolicy,
    MeasurementSet,
    SelectedOption,
    TreatmentTemplate,
)
from .policy import Catalog, load_markup_policy, markup_policy_from_dict, validate_document
from .price_logic import default_heading_providers
from .reporting import fabric_length

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuoteInputs:
    template: Optional[TreatmentTemplate]
    fabric: Optional[FabricItem]
    measurements: MeasurementSet
    options: Tuple[SelectedOption, ...]
    policy: MarkupPolicy
    category: Optional[str]


@dataclass(frozen=True)
class QuoteResponse:
    result: CalculationResult
    record: PersistenceRecord
    display: Dict[str, Any]
    committed: bool


def resolve_policy(payload: Mapping[str, Any], config: Config) -> MarkupPolicy:
    raw = payload.get("markup_policy")
    if raw is not None:
        return markup_policy_from_dict(raw, default_percent=config.default_markup, source="request markup_policy")
    if config.policy_file is not None and config.policy_file.exists():
        return load_markup_policy(config.policy_file, default_percent=config.default_markup)
    return MarkupPolicy(default_percent=config.default_markup)


def build_inputs(payload: Mapping[str, Any], config: Config, catalog: Optional[Catalog] = None) -> QuoteInputs:
    """Turn a JSON-like quote request into engine inputs."""

    try:
        validate_document(payload, "quote_request", "quote request")
    except PolicyValidationError as exc:
        raise InvalidRequestError(str(exc)) from exc

    template: Optional[TreatmentTemplate] = None
    if payload.get("template") is not None:
        template = TreatmentTemplate.from_dict(payload["template"])
    elif payload.get("template_id") is not None:
        template = catalog.template(payload["template_id"]) if catalog else None
        if template is None:
            raise InvalidRequestError(f"Unknown template id: {payload['template_id']}")

    fabric: Optional[FabricItem] = None
    if payload.get("fabric") is not None:
        fabric = FabricItem.from_dict(payload["fabric"])
    elif payload.get("fabric_id") is not None:
        fabric = catalog.fabric(payload["fabric_id"]) if catalog else None
        if fabric is None:
            logger.warning("Fabric %s not found in catalog; pricing without fabric", payload["fabric_id"])

    measurements = MeasurementSet.from_dict(
        payload.get("measurements") or {},
        payload.get("unit"),
        default_unit=config.display_unit,
    )
    options: List[SelectedOption] = [SelectedOption.from_dict(raw) for raw in payload.get("options") or []]
    return QuoteInputs(
        template=template,
        fabric=fabric,
        measurements=measurements,
        options=tuple(options),
        policy=resolve_policy(payload, config),
        category=payload.get("category"),
    )


def quote(
    payload: Mapping[str, Any],
    *,
    config: Optional[Config] = None,
    catalog: Optional[Catalog] = None,
    engine: Optional[TreatmentEngine] = None,
    binding: Optional[ResultBinding] = None,
) -> QuoteResponse:
    """Price one request and return the result, its persistence record and display view."""

    config = config or load_config(os.environ, None)
    inputs = build_inputs(payload, config, catalog)
    if engine is None:
        providers = default_heading_providers(
            catalog.headings if catalog else None,
            catalog.inventory_headings if catalog else None,
        )
        engine = TreatmentEngine(config, policy=inputs.policy, heading_providers=providers)
    binding = binding or ResultBinding()

    key = engine.input_key(
        inputs.template, inputs.fabric, inputs.measurements, inputs.options, inputs.policy, inputs.category
    )
    binding.begin(key)
    result = engine.calculate(
        inputs.template,
        inputs.fabric,
        inputs.measurements,
        inputs.options,
        inputs.policy,
        category=inputs.category,
    )
    committed = binding.offer(result) if result.ok else False
    record = prepare_save(binding, payload.get("previous_record"), fresh=result)
    display = result.for_display(bool(payload.get("can_view_cost", True)))
    length = fabric_length(result, config.display_unit)
    if length is not None:
        display["fabricLength"] = {"value": length[0], "unit": length[1]}
    return QuoteResponse(result=result, record=record, display=display, committed=committed)


__all__ = ["QuoteInputs", "QuoteResponse", "resolve_policy", "build_inputs", "quote"]
