"""curl command-line codec.

`to_curl` renders a request template as a copy-pasteable command;
`from_curl` is a best-effort parser for commands of the same shape and
never raises on input it does not understand.
"""

import json
import re
from typing import Any

from .base import HttpRequest, KeyValuePair

METHOD_RE = re.compile(r"-X\s+(GET|POST|PUT|DELETE|PATCH)\b")
URL_RE = re.compile(r"""['"](https?://[^'"]+)['"]""")
HEADER_RE = re.compile(r"""-H\s+['"]([^:'"]+):\s*([^'"]*)['"]""")
BODY_RE = re.compile(r"""-d\s+(?:'([^']*)'|"([^"]*)")""")

CONTINUATION = " \\\n  "


def to_curl(req: HttpRequest) -> str:
    """Serialize a request template to a curl command."""
    parts = [f"curl -X {req.method} '{req.url}'"]

    for header in req.headers:
        if header.enabled and header.key:
            parts.append(f"-H '{header.key}: {header.value}'")

    if req.method not in ("GET", "DELETE") and req.body:
        if req.body_type == "json":
            try:
                minified = json.dumps(json.loads(req.body), separators=(",", ":"), ensure_ascii=False)
            except ValueError:
                parts.append(f"-d '{req.body}'")
            else:
                parts.append(f"-d '{minified}'")
                if not any(h.enabled and h.key.lower() == "content-type" for h in req.headers):
                    parts.append("-H 'Content-Type: application/json'")
        else:
            parts.append(f"-d '{req.body}'")

    return CONTINUATION.join(parts)


def from_curl(text: str) -> dict[str, Any]:
    """Extract method, URL, headers and body from a curl command.

    Returns a partial request as a dict of HttpRequest fields; anything
    missing from the command keeps its default.
    """
    text = text or ""
    method = METHOD_RE.search(text)
    url = URL_RE.search(text)
    body = BODY_RE.search(text)

    headers = [
        KeyValuePair(key=key.strip(), value=value.strip())
        for key, value in HEADER_RE.findall(text)
    ]

    return {
        "method": method.group(1) if method else "GET",
        "url": url.group(1) if url else "",
        "headers": headers,
        "body": (body.group(1) if body.group(1) is not None else body.group(2)) if body else "",
        "body_type": "json",
    }
