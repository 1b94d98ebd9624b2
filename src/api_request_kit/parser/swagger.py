"""OpenAPI / Swagger document importer.

Turns OpenAPI 3.x and Swagger 2.0 documents into environments, tag
folders and request templates ready to be stored in a collection.
"""

import json
import logging
import re
from pathlib import Path

import yaml

from .base import Environment, HttpRequest, KeyValuePair, OpenApiImport
from .examples import generate_example
from .refs import resolve_ref

logger = logging.getLogger(__name__)

METHODS = ("get", "post", "put", "delete", "patch")
DEFAULT_BASE_URL = "https://api.example.com"
DEFAULT_SERVER_URL = "http://localhost"

PATH_PARAM_RE = re.compile(r"\{([^}]+)\}")


def parse_openapi(file_path: Path) -> OpenApiImport:
    """Load an OpenAPI/Swagger file (JSON or YAML) and import it."""
    text = file_path.read_text(encoding="utf-8")
    doc = yaml.safe_load(text)
    if not isinstance(doc, dict):
        raise ValueError(f"{file_path} is not an OpenAPI document")
    return import_openapi(doc)


def import_openapi(doc: dict) -> OpenApiImport:
    """Walk servers and paths of an already-parsed document.

    Operations are extracted best effort: one malformed operation is
    logged and skipped without aborting the import.
    """
    result = OpenApiImport(
        name=(doc.get("info") or {}).get("title") or "Imported Collection",
        environments=_parse_environments(doc),
    )

    paths = doc.get("paths")
    if not isinstance(paths, dict):
        return result

    for path, methods in paths.items():
        if not isinstance(methods, dict):
            continue
        for method, operation in methods.items():
            if not isinstance(method, str) or method.lower() not in METHODS:
                continue
            try:
                request = _convert_operation(path, method.upper(), operation or {}, doc)
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed operation %s %s", method.upper(), path, exc_info=True)
                continue

            tags = (operation or {}).get("tags")
            if isinstance(tags, list) and tags:
                result.folders.setdefault(str(tags[0]), []).append(request)
            else:
                result.root_requests.append(request)

    return result


def _parse_environments(doc: dict) -> list[Environment]:
    environments = []
    servers = doc.get("servers")
    if isinstance(servers, list):
        for index, server in enumerate(servers):
            if not isinstance(server, dict):
                continue
            environments.append(
                _base_url_env(
                    server.get("description") or f"Server {index + 1}",
                    server.get("url") or DEFAULT_SERVER_URL,
                )
            )

    if not environments:
        base_url = DEFAULT_BASE_URL
        if doc.get("host"):
            schemes = doc.get("schemes") or ["https"]
            base_url = f"{schemes[0]}://{doc['host']}{doc.get('basePath', '')}"
        environments.append(_base_url_env("Default", base_url))

    return environments


def _base_url_env(name: str, url: str) -> Environment:
    return Environment(name=name, variables=[KeyValuePair(key="baseUrl", value=url)])


def _convert_operation(path: str, method: str, operation: dict, doc: dict) -> HttpRequest:
    params = [KeyValuePair(key=name, value="") for name in PATH_PARAM_RE.findall(path)]
    headers = []

    for param in operation.get("parameters") or []:
        if "$ref" in param:
            param = resolve_ref(param["$ref"], doc) or param
        location = param.get("in")
        name = param.get("name")
        if location not in ("query", "header") or not name:
            continue
        entry = KeyValuePair(key=str(name), value=_param_default(param))
        if location == "query":
            params.append(entry)
        else:
            headers.append(entry)

    body_type, body = _parse_request_body(operation.get("requestBody"), doc)

    return HttpRequest(
        name=operation.get("summary") or f"{method} {path}",
        method=method,
        url=f"{{{{baseUrl}}}}{path}",
        headers=headers,
        params=params,
        cookies=[],
        body_type=body_type,
        body=body,
    )


def _param_default(param: dict) -> str:
    default = (param.get("schema") or {}).get("default")
    if default is None or default == "":
        return ""
    if isinstance(default, bool):
        return "true" if default else "false"
    return str(default)


def _parse_request_body(body: dict | None, doc: dict) -> tuple[str, str]:
    if not body:
        return "none", ""
    if "$ref" in body:
        body = resolve_ref(body["$ref"], doc) or {}
    media = (body.get("content") or {}).get("application/json")
    if media is None:
        return "none", ""

    schema = (media or {}).get("schema")
    if not schema:
        return "json", "{}"
    example = generate_example(schema, doc)
    return "json", json.dumps(example, indent=2, ensure_ascii=False, default=str)
