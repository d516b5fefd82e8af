import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

import yaml
from dotenv import load_dotenv

from .api import quote
from .config import Config
from .config import load_config as load_runtime_config
from .errors import DrapecostError
from .policy import Catalog, apply_policy_defaults, load_catalog, load_document
from .reporting import export_breakdown, make_summary_text

load_dotenv()

logger = logging.getLogger(__name__)


def run(args: argparse.Namespace, runtime_config: Config) -> int:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=runtime_config.log_level, format="%(message)s")

    try:
        payload = load_document(Path(args.request))
        catalog: Optional[Catalog] = load_catalog(Path(args.catalog)) if args.catalog else None
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"error: cannot read input: {exc}", file=sys.stderr)
        return 2
    except DrapecostError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    if not isinstance(payload, dict):
        print("error: request must be a JSON/YAML object", file=sys.stderr)
        return 2
    if args.hide_cost:
        payload["can_view_cost"] = False

    try:
        response = quote(payload, config=runtime_config, catalog=catalog)
    except DrapecostError as exc:
        print(f"error: invalid request: {exc}", file=sys.stderr)
        return 2

    can_view_cost = bool(payload.get("can_view_cost", True))
    if args.json:
        output = {"result": response.display}
        if can_view_cost:
            output["record"] = response.record.to_dict()
        print(json.dumps(output, indent=2, sort_keys=True))
    else:
        summary = make_summary_text(response.result, can_view_cost=can_view_cost, display_unit=runtime_config.display_unit)
        sys.stdout.write(summary)

    if args.export:
        path = export_breakdown(response.result, Path(args.export))
        logger.info("Wrote cost breakdown to %s", path)
    return 0 if response.result.ok else 1


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Price a window treatment quote request")
    parser.add_argument("request", help="Quote request (JSON or YAML)")
    parser.add_argument("--catalog", help="Catalog of templates, fabrics and headings (JSON or YAML)")
    parser.add_argument("--policy", help="Markup policy file (JSON or YAML)")
    parser.add_argument("--unit", help="Display unit for measurements (mm, cm, m, inch, feet, yard)")
    parser.add_argument("--default-markup", type=float, help="Global default markup percent")
    parser.add_argument("--waste-percent", type=float, help="Fallback waste percent")
    parser.add_argument("--export", help="Write the cost breakdown to .xlsx or .csv")
    parser.add_argument("--json", action="store_true", help="Print the result and persistence record as JSON")
    parser.add_argument("--hide-cost", action="store_true", help="Omit raw cost figures from the output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Increase logging verbosity")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    runtime_cfg = load_runtime_config(os.environ, args)
    if runtime_cfg.policy_file is not None:
        try:
            apply_policy_defaults(runtime_cfg.policy_file)
        except (OSError, ValueError, yaml.YAMLError, DrapecostError) as exc:
            print(f"error: invalid policy file: {exc}", file=sys.stderr)
            return 2
        runtime_cfg = load_runtime_config(os.environ, args)
    return run(args, runtime_cfg)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
