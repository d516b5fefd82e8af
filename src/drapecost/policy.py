from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from jsonschema import Draft7Validator

from .errors import PolicyValidationError
from .models import FabricItem, MarkupPolicy, TreatmentTemplate

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"


def load_document(path: Path) -> Any:
    """Read a JSON or YAML document based on its suffix."""

    with Path(path).open("r", encoding="utf-8") as f:
        if Path(path).suffix.lower() in {".yaml", ".yml"}:
            return yaml.safe_load(f)
        return json.load(f)


def _validator(schema_name: str) -> Draft7Validator:
    with (SCHEMA_DIR / f"{schema_name}.schema.json").open("r", encoding="utf-8") as f:
        return Draft7Validator(json.load(f))


def validate_document(payload: Any, schema_name: str, source: str = "document") -> None:
    """Raise :class:`PolicyValidationError` listing every schema violation."""

    problems = []
    for error in sorted(_validator(schema_name).iter_errors(payload), key=lambda e: list(e.path)):
        location = "/".join(str(p) for p in error.path) or "<root>"
        problems.append(f"{location}: {error.message}")
    if problems:
        raise PolicyValidationError(source, problems)


def markup_policy_from_dict(payload: Mapping[str, Any], *, default_percent: float = 0.0, source: str = "markup policy") -> MarkupPolicy:
    validate_document(payload, "markup_policy", source)
    return MarkupPolicy.from_dict(payload, default_percent=default_percent)


def load_markup_policy(path: Path, *, default_percent: float = 0.0) -> MarkupPolicy:
    payload = load_document(path) or {}
    policy = markup_policy_from_dict(payload, default_percent=default_percent, source=str(path))
    logger.info(
        "Loaded markup policy from %s (%d categories, default %.1f%%)",
        path,
        len(policy.category_percents),
        policy.default_percent,
    )
    return policy


def apply_policy_defaults(path: Path) -> None:
    """Set default environment variables from a policy file if not already set.

    Only missing env vars are set.
    """
    if not path.exists():
        return
    payload = load_document(path) or {}
    validate_document(payload, "markup_policy", str(path))
    env_defaults = payload.get("env_defaults") or {}
    for key, value in env_defaults.items():
        if str(os.environ.get(key, "")).strip() == "":
            os.environ[key] = str(value)


@dataclass(frozen=True)
class Catalog:
    """Templates, fabrics and heading catalogs keyed by id."""

    templates: Dict[str, TreatmentTemplate] = field(default_factory=dict)
    fabrics: Dict[str, FabricItem] = field(default_factory=dict)
    headings: Dict[str, Any] = field(default_factory=dict)
    inventory_headings: Dict[str, Any] = field(default_factory=dict)

    def template(self, template_id: Any) -> Optional[TreatmentTemplate]:
        return self.templates.get(str(template_id)) if template_id is not None else None

    def fabric(self, fabric_id: Any) -> Optional[FabricItem]:
        return self.fabrics.get(str(fabric_id)) if fabric_id is not None else None


def catalog_from_dict(payload: Mapping[str, Any], *, source: str = "catalog") -> Catalog:
    validate_document(payload, "catalog", source)
    templates = {}
    for raw in payload.get("templates") or []:
        template = TreatmentTemplate.from_dict(raw)
        templates[template.id] = template
    fabrics = {}
    for raw in payload.get("fabrics") or []:
        fabric = FabricItem.from_dict(raw)
        fabrics[fabric.id] = fabric
    return Catalog(
        templates=templates,
        fabrics=fabrics,
        headings=dict(payload.get("headings") or {}),
        inventory_headings=dict(payload.get("inventory_headings") or {}),
    )


def load_catalog(path: Path) -> Catalog:
    catalog = catalog_from_dict(load_document(path) or {}, source=str(path))
    logger.info("Loaded %d templates and %d fabrics from %s", len(catalog.templates), len(catalog.fabrics), path)
    return catalog


__all__ = [
    "SCHEMA_DIR",
    "Catalog",
    "load_document",
    "validate_document",
    "markup_policy_from_dict",
    "load_markup_policy",
    "apply_policy_defaults",
    "catalog_from_dict",
    "load_catalog",
]
