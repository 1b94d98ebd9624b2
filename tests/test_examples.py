import re

from api_request_kit.parser.examples import EXAMPLE_EMAIL, EXAMPLE_UUID, generate_example


class TestScalars:
    def test_string_formats(self):
        assert generate_example({"type": "string"}, {}) == "string"
        assert generate_example({"type": "string", "format": "email"}, {}) == EXAMPLE_EMAIL
        assert generate_example({"type": "string", "format": "uuid"}, {}) == EXAMPLE_UUID

    def test_date_formats(self):
        date = generate_example({"type": "string", "format": "date"}, {})
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}", date)
        stamp = generate_example({"type": "string", "format": "date-time"}, {})
        assert stamp.startswith(date[:4])
        assert "T" in stamp

    def test_enum_first_value(self):
        assert generate_example({"type": "string", "enum": ["dog", "cat"]}, {}) == "dog"

    def test_numbers_and_booleans(self):
        assert generate_example({"type": "integer"}, {}) == 0
        assert generate_example({"type": "number"}, {}) == 0
        assert generate_example({"type": "boolean"}, {}) is True

    def test_unknown_type_is_none(self):
        assert generate_example({"type": "file"}, {}) is None
        assert generate_example(None, {}) is None

    def test_example_and_default_short_circuit(self):
        schema = {"type": "object", "properties": {"a": {"type": "string"}}, "example": {"x": 1}}
        assert generate_example(schema, {}) == {"x": 1}
        assert generate_example({"type": "integer", "default": 5}, {}) == 5


class TestStructures:
    def test_object_properties(self):
        schema = {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "age": {"type": "integer"},
                "tags": {"type": "array", "items": {"type": "string"}},
            },
        }
        assert generate_example(schema, {}) == {"name": "string", "age": 0, "tags": ["string"]}

    def test_properties_without_type(self):
        assert generate_example({"properties": {"ok": {"type": "boolean"}}}, {}) == {"ok": True}

    def test_array_without_items(self):
        assert generate_example({"type": "array"}, {}) == []

    def test_pure_function(self):
        schema = {"type": "object", "properties": {"n": {"type": "number"}}}
        assert generate_example(schema, {}) == generate_example(schema, {})


class TestReferencesAndComposition:
    ROOT = {
        "components": {
            "schemas": {
                "Base": {"type": "object", "properties": {"id": {"type": "integer"}, "kind": {"type": "string"}}},
                "Extra": {"type": "object", "properties": {"kind": {"type": "string", "example": "extra"}}},
                "Node": {"type": "object", "properties": {"child": {"$ref": "#/components/schemas/Node"}}},
            }
        }
    }

    def test_ref_is_followed(self):
        assert generate_example({"$ref": "#/components/schemas/Base"}, self.ROOT) == {"id": 0, "kind": "string"}

    def test_unresolved_ref_is_empty_object(self):
        assert generate_example({"$ref": "#/components/schemas/Missing"}, self.ROOT) == {}
        assert generate_example({"$ref": "http://x/y.json"}, self.ROOT) == {}

    def test_all_of_merges_left_to_right(self):
        schema = {"allOf": [{"$ref": "#/components/schemas/Base"}, {"$ref": "#/components/schemas/Extra"}]}
        assert generate_example(schema, self.ROOT) == {"id": 0, "kind": "extra"}

    def test_one_of_and_any_of_take_first_branch(self):
        assert generate_example({"oneOf": [{"type": "integer"}, {"type": "string"}]}, {}) == 0
        assert generate_example({"anyOf": [{"type": "boolean"}, {"type": "string"}]}, {}) is True

    def test_self_reference_terminates(self):
        result = generate_example({"$ref": "#/components/schemas/Node"}, self.ROOT)
        depth = 0
        node = result
        while isinstance(node, dict):
            node = node["child"]
            depth += 1
        assert node is None
        assert depth < 10

    def test_depth_beyond_limit_returns_none(self):
        assert generate_example({"type": "string"}, {}, depth=9) is None
        assert generate_example({"type": "string"}, {}, depth=8) == "string"
