from urllib.parse import parse_qsl, urlsplit

import pytest

from api_request_kit.parser.base import Environment, HttpRequest, KeyValuePair
from api_request_kit.resolver.variables import (
    UnresolvedVariablesError,
    VariableResolver,
    find_placeholders,
    merge_variables,
    resolve_request,
)


def _env(name: str, variables: dict | None = None, headers: dict | None = None) -> Environment:
    return Environment(
        name=name,
        variables=[KeyValuePair(key=k, value=v) for k, v in (variables or {}).items()],
        headers=[KeyValuePair(key=k, value=v) for k, v in (headers or {}).items()],
    )


class TestMergeVariables:
    def test_later_scope_wins(self):
        merged = merge_variables([
            [KeyValuePair(key="a", value="1"), KeyValuePair(key="b", value="1")],
            [KeyValuePair(key="a", value="2")],
        ])
        assert merged == {"a": "2", "b": "1"}

    def test_disabled_entries_are_inert(self):
        merged = merge_variables([
            [KeyValuePair(key="a", value="1")],
            [KeyValuePair(key="a", value="2", enabled=False)],
        ])
        assert merged == {"a": "1"}

    def test_duplicate_keys_last_wins(self):
        merged = merge_variables([[KeyValuePair(key="a", value="1"), KeyValuePair(key="a", value="2")]])
        assert merged == {"a": "2"}


class TestVariableResolver:
    def test_whitespace_tolerant(self):
        resolver = VariableResolver({"host": "h.test"})
        assert resolver.resolve("{{host}}/{{ host }}/{{   host\t}}") == "h.test/h.test/h.test"

    def test_case_sensitive_and_unbound_left_as_is(self):
        resolver = VariableResolver({"host": "h.test"})
        assert resolver.resolve("{{Host}}/{{other}}") == "{{Host}}/{{other}}"

    def test_values_are_not_re_expanded(self):
        resolver = VariableResolver({"a": "{{b}}", "b": "x"})
        assert resolver.resolve("{{a}}") == "{{b}}"

    def test_empty(self):
        assert VariableResolver({}).resolve(None) == ""
        assert VariableResolver({}).resolve("") == ""

    def test_find_placeholders(self):
        assert find_placeholders("{{a}}/{{ b }}/{{a}}/{single}") == ["a", "b"]


class TestResolveRequest:
    def test_collection_overrides_global(self):
        req = HttpRequest(url="{{baseUrl}}/x")
        payload = resolve_request(
            req,
            global_env=_env("G", {"baseUrl": "https://a.test"}),
            collection_env=_env("C", {"baseUrl": "https://b.test"}),
        )
        assert payload.url == "https://b.test/x"

    def test_missing_key_blocks_dispatch(self):
        req = HttpRequest(url="{{baseUrl}}/{{missingKey}}")
        with pytest.raises(UnresolvedVariablesError) as exc:
            resolve_request(
                req,
                global_env=_env("G", {"baseUrl": "https://a.test"}),
                active_label="Global: G",
                available=["Global: G", "API > Dev"],
            )
        assert exc.value.missing == ["missingKey"]
        message = str(exc.value)
        assert "missingKey" in message
        assert "Global: G" in message
        assert "API > Dev" in message

    def test_empty_placeholder_blocks_dispatch(self):
        for url in ("https://a.test/{{}}/x", "https://a.test/{{  }}/x"):
            with pytest.raises(UnresolvedVariablesError) as exc:
                resolve_request(HttpRequest(url=url))
            assert exc.value.missing == [""]
            assert "Unresolved variables: {{}}" in str(exc.value)

    def test_unterminated_placeholder_blocks_dispatch(self):
        with pytest.raises(UnresolvedVariablesError):
            resolve_request(HttpRequest(url="https://a.test/{{oops"))

    def test_no_active_environment_marker(self):
        with pytest.raises(UnresolvedVariablesError) as exc:
            resolve_request(HttpRequest(url="{{baseUrl}}/x"))
        assert exc.value.active_environment is None
        assert "none active" in str(exc.value)

    def test_header_precedence(self):
        req = HttpRequest(
            url="https://a.test",
            headers=[KeyValuePair(key="X-Layer", value="request")],
        )
        payload = resolve_request(
            req,
            global_env=_env("G", headers={"X-Layer": "global", "X-Global": "g"}),
            collection_env=_env("C", headers={"X-Layer": "collection", "X-Col": "c"}),
        )
        assert payload.headers == {"X-Layer": "request", "X-Global": "g", "X-Col": "c"}

    def test_headers_params_and_body_are_substituted(self):
        req = HttpRequest(
            method="POST",
            url="{{baseUrl}}/items?sort=asc",
            headers=[KeyValuePair(key="Authorization", value="Bearer {{token}}")],
            params=[
                KeyValuePair(key="{{pageKey}}", value="{{page}}"),
                KeyValuePair(key="off", value="1", enabled=False),
            ],
            cookies=[KeyValuePair(key="session", value="{{token}}")],
            body='{"owner": "{{ user }}"}',
            body_type="json",
        )
        env = _env("G", {"baseUrl": "https://a.test", "token": "t0k", "pageKey": "page", "page": "2", "user": "ada"})
        payload = resolve_request(req, global_env=env)
        parts = urlsplit(payload.url)
        assert parts.netloc == "a.test"
        assert parse_qsl(parts.query) == [("sort", "asc"), ("page", "2")]
        assert payload.headers == {"Authorization": "Bearer t0k"}
        assert payload.cookies == {"session": "t0k"}
        assert payload.body == '{"owner": "ada"}'

    def test_request_entries_act_as_variables(self):
        req = HttpRequest(
            url="https://a.test/{{tenant}}",
            params=[KeyValuePair(key="tenant", value="acme")],
        )
        payload = resolve_request(req)
        assert payload.url.startswith("https://a.test/acme")

    def test_scheme_is_defaulted(self):
        payload = resolve_request(HttpRequest(url="{{host}}/ping"), global_env=_env("G", {"host": "a.test"}))
        assert payload.url == "https://a.test/ping"

    def test_empty_cookies_and_body_omitted(self):
        payload = resolve_request(HttpRequest(url="https://a.test"))
        assert payload.cookies is None
        assert payload.body is None

    def test_snapshot_is_isolated_from_later_edits(self):
        env = _env("G", {"baseUrl": "https://a.test"})
        payload = resolve_request(HttpRequest(url="{{baseUrl}}"), global_env=env)
        env.variables[0].value = "https://changed.test"
        assert payload.url == "https://a.test"
