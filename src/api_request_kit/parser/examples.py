"""Example payload generation from JSON Schema nodes.

Walks a schema fragment and synthesizes a plain JSON value for it,
following internal $refs through the owning document.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from .refs import resolve_ref

logger = logging.getLogger(__name__)

MAX_DEPTH = 8

EXAMPLE_EMAIL = "user@example.com"
EXAMPLE_UUID = "3fa85f64-5717-4562-b3fc-2c963f66afa6"


def generate_example(schema: Any, root: dict, depth: int = 0) -> Any:
    """Build an example value for `schema`, resolving refs against `root`.

    Returns None once `depth` exceeds MAX_DEPTH, which bounds
    self-referential schemas without tracking visited nodes.
    """
    if depth > MAX_DEPTH:
        return None
    if not isinstance(schema, dict) or not schema:
        return None

    if "$ref" in schema:
        resolved = resolve_ref(schema["$ref"], root)
        if isinstance(resolved, dict):
            return generate_example(resolved, root, depth + 1)
        logger.debug("Unresolved reference %r, using empty object", schema["$ref"])
        return {}

    if isinstance(schema.get("allOf"), list):
        combined: dict = {}
        for branch in schema["allOf"]:
            example = generate_example(branch, root, depth)
            if isinstance(example, dict):
                combined.update(example)
        return combined

    # Unions take their first branch only.
    for key in ("oneOf", "anyOf"):
        branches = schema.get(key)
        if isinstance(branches, list) and branches:
            return generate_example(branches[0], root, depth)

    if "example" in schema:
        return schema["example"]
    if "default" in schema:
        return schema["default"]

    schema_type = _schema_type(schema)

    if schema_type == "object" or "properties" in schema:
        properties = schema.get("properties") or {}
        return {
            name: generate_example(prop, root, depth + 1)
            for name, prop in properties.items()
        }

    if schema_type == "array":
        if "items" in schema:
            return [generate_example(schema["items"], root, depth + 1)]
        return []

    if schema_type == "string":
        return _string_example(schema)

    if schema_type in ("number", "integer"):
        return 0
    if schema_type == "boolean":
        return True

    return None


def _schema_type(schema: dict) -> str | None:
    schema_type = schema.get("type")
    # OpenAPI 3.1 allows a list of types, e.g. ["string", "null"]
    if isinstance(schema_type, list):
        non_null = [t for t in schema_type if t != "null"]
        return non_null[0] if non_null else None
    return schema_type


def _string_example(schema: dict) -> Any:
    fmt = schema.get("format")
    if fmt == "date-time":
        return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if fmt == "date":
        return datetime.now(timezone.utc).date().isoformat()
    if fmt == "email":
        return EXAMPLE_EMAIL
    if fmt == "uuid":
        return EXAMPLE_UUID
    enum = schema.get("enum")
    if isinstance(enum, list) and enum:
        return enum[0]
    return "string"
