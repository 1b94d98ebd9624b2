"""Variable resolution for request templates.

Merges variables and shared headers from the active global and
collection environments, substitutes {{ key }} placeholders, and refuses
to build a dispatch payload while the URL still holds unbound keys.
"""

import logging
import re
from collections.abc import Iterable
from urllib.parse import urlsplit, urlunsplit, urlencode

from api_request_kit.parser.base import DispatchPayload, Environment, HttpRequest, KeyValuePair

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]*?)\s*\}\}")

NO_ACTIVE_ENV = "none active"
EMPTY_PLACEHOLDER = "{{}}"


class UnresolvedVariablesError(ValueError):
    """Raised when placeholders remain in the URL after substitution."""

    def __init__(self, missing: list[str], active_environment: str | None, available: list[str]):
        self.missing = missing
        self.active_environment = active_environment
        self.available = available
        super().__init__(self._format())

    def _format(self) -> str:
        names = ", ".join(key or EMPTY_PLACEHOLDER for key in self.missing)
        lines = [
            f"Unresolved variables: {names}",
            "",
            f"Active environment: {self.active_environment or NO_ACTIVE_ENV}",
        ]
        if self.available:
            lines += ["", "Available environments:"]
            lines += [f"  - {name}" for name in self.available]
        return "\n".join(lines)


def merge_variables(scopes: Iterable[Iterable[KeyValuePair]]) -> dict[str, str]:
    """Merge entry lists ordered low -> high precedence.

    Disabled entries and empty keys are ignored; a later entry for the
    same key replaces an earlier one, within a scope as across scopes.
    """
    merged: dict[str, str] = {}
    for entries in scopes:
        for entry in entries:
            if entry.enabled and entry.key:
                merged[entry.key] = entry.value
    return merged


def find_placeholders(text: str | None) -> list[str]:
    """Placeholder keys in order of first appearance."""
    if not text:
        return []
    seen: list[str] = []
    for match in PLACEHOLDER_RE.finditer(text):
        key = match.group(1)
        if key not in seen:
            seen.append(key)
    return seen


class VariableResolver:
    """Substitutes {{ key }} placeholders from a fixed variable map.

    Keys match literally and case-sensitively; unbound placeholders are
    left untouched. Substitution is a single pass, so a value that itself
    contains a placeholder is not expanded again.
    """

    def __init__(self, variables: dict[str, str]):
        self.variables = dict(variables)

    def resolve(self, template: str | None) -> str:
        if not template:
            return template or ""

        def replacer(match: re.Match) -> str:
            key = match.group(1)
            if key in self.variables:
                return self.variables[key]
            return match.group(0)

        return PLACEHOLDER_RE.sub(replacer, template)

    def resolve_pairs(self, *scopes: Iterable[KeyValuePair]) -> dict[str, str]:
        """Resolve keys and values of enabled entries into one ordered map."""
        result: dict[str, str] = {}
        for entries in scopes:
            for entry in entries:
                if entry.enabled and entry.key:
                    result[self.resolve(entry.key)] = self.resolve(entry.value)
        return result


def resolve_request(
    request: HttpRequest,
    global_env: Environment | None = None,
    collection_env: Environment | None = None,
    active_label: str | None = None,
    available: list[str] | None = None,
) -> DispatchPayload:
    """Build the dispatch payload for `request`.

    Precedence, low -> high: global variables, global shared headers,
    collection variables, collection shared headers, the request's own
    headers and params. The URL is validated before anything else is
    substituted.
    """
    # Snapshot so later edits cannot leak into this payload.
    request = request.model_copy(deep=True)
    global_env = global_env.model_copy(deep=True) if global_env else None
    collection_env = collection_env.model_copy(deep=True) if collection_env else None

    scopes: list[list[KeyValuePair]] = []
    for env in (global_env, collection_env):
        if env is not None:
            scopes += [env.variables, env.headers]
    scopes += [request.headers, request.params]

    resolver = VariableResolver(merge_variables(scopes))

    url = resolver.resolve(request.url)
    missing = find_placeholders(url)
    if missing or "{{" in url:
        # an unterminated "{{" still blocks dispatch; it is reported as an empty key
        missing = missing or [""]
        logger.info("Dispatch blocked, unresolved variables: %s", missing)
        raise UnresolvedVariablesError(missing, active_label, list(available or []))

    headers = resolver.resolve_pairs(
        global_env.headers if global_env else [],
        collection_env.headers if collection_env else [],
        request.headers,
    )
    cookies = resolver.resolve_pairs(request.cookies)
    query = [
        (resolver.resolve(p.key), resolver.resolve(p.value))
        for p in request.params
        if p.enabled and p.key
    ]

    return DispatchPayload(
        method=request.method,
        url=_build_url(url, query),
        headers=headers,
        cookies=cookies or None,
        body=resolver.resolve(request.body) or None,
    )


def _build_url(url: str, query: list[tuple[str, str]]) -> str:
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    if not query:
        return url
    parts = urlsplit(url)
    extra = urlencode(query)
    combined = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit((parts.scheme, parts.netloc, parts.path, combined, parts.fragment))
