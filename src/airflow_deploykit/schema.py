"""Check rendered chart values against the bundled JSON schema.

The schema covers the subset of the apache-airflow chart's values that
this tool renders: images, DAG delivery, the metadata database, keys
and the webserver service. Unknown keys are allowed so extra_values
still pass.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator, ValidationError

from airflow_deploykit.errors import SchemaValidationError

SCHEMAS_DIR = Path(__file__).parent / "schemas"
VALUES_SCHEMA = SCHEMAS_DIR / "values.schema.json"


def load_schema(path: str | Path = VALUES_SCHEMA) -> dict[str, Any]:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def validate(instance: Any, schema: dict[str, Any]) -> None:
    """Raise SchemaValidationError listing every violation, ordered by path."""
    found = list(Draft202012Validator(schema).iter_errors(instance))
    if not found:
        return
    found.sort(key=lambda err: [str(part) for part in err.absolute_path])
    raise SchemaValidationError(
        f"Schema validation failed with {len(found)} error(s)",
        [_describe(err) for err in found],
    )


def validate_values(values: dict[str, Any], schema_path: str | Path | None = None) -> None:
    validate(values, load_schema(schema_path or VALUES_SCHEMA))


def _describe(error: ValidationError) -> str:
    location = ".".join(str(part) for part in error.absolute_path) or "(root)"
    return f"At '{location}': {error.message}"
