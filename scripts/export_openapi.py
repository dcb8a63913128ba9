"""Export a merged gateway document and enforce baseline OpenAPI quality."""

from __future__ import annotations

import argparse
import asyncio
import json
import pathlib
import sys
from typing import Any

repo_root = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(repo_root / "src"))

import yaml  # noqa: E402

from openapi_gateway.config import Settings  # noqa: E402
from openapi_gateway.models.document import operations  # noqa: E402
from openapi_gateway.services.aggregation_engine import AggregationEngine  # noqa: E402
from openapi_gateway.services.config_store import ProxyConfigStore  # noqa: E402


def quality_issues(document: dict[str, Any]) -> list[str]:
    issues: list[str] = []
    operation_ids: list[str] = []
    for path, path_item in document.get("paths", {}).items():
        for method, operation in operations(path_item).items():
            if not operation.get("summary") and not operation.get("description"):
                issues.append(f"missing documentation: {method.upper()} {path}")
            op_id = operation.get("operationId")
            if op_id:
                operation_ids.append(op_id)

    for op_id in sorted({op_id for op_id in operation_ids if operation_ids.count(op_id) > 1}):
        issues.append(f"duplicate operationId: {op_id}")
    return issues


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", required=True, help="Routing configuration file (JSON/YAML).")
    parser.add_argument("--document", default="default", help="Published document name.")
    parser.add_argument("--output", required=True, help="Output file; .yaml/.yml writes YAML.")
    args = parser.parse_args(argv)

    app_settings = Settings(PROXY_CONFIG_PATH=args.config)
    engine = AggregationEngine(
        config_store=ProxyConfigStore(app_settings), app_settings=app_settings
    )
    result = asyncio.run(engine.aggregate(args.document))
    document = result.document.to_mapping()

    output = pathlib.Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    if output.suffix in {".yaml", ".yml"}:
        output.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
    else:
        output.write_text(json.dumps(document, indent=2), encoding="utf-8")
    print(f"Wrote {output} ({len(document.get('paths', {}))} paths)")

    for failure in result.failures:
        print(f"warning: skipped {failure.cluster_id}/{failure.destination_id}: {failure.detail}")

    issues = quality_issues(document)
    if issues:
        print("OpenAPI quality gate failed:")
        for issue in issues:
            print(f"- {issue}")
        return 1
    print("OpenAPI quality gate passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
