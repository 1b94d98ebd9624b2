"""Internal $ref resolution for OpenAPI documents."""

from typing import Any

ROOT_PREFIX = "#/"


def resolve_ref(ref: str, root: Any) -> Any | None:
    """Resolve a document-local pointer like '#/components/schemas/Pet'.

    Returns None for external or malformed pointers and for any missing
    segment, so one bad reference never aborts an import.
    """
    if not isinstance(ref, str) or not ref.startswith(ROOT_PREFIX):
        return None

    current = root
    for part in ref[len(ROOT_PREFIX):].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return None
    return current
