"""Tests for spec decoding, skill compilation and tool schemas."""

import json

import pytest
import yaml

from skillsmith.skills import (
    MAX_SPEC_BYTES,
    Skill,
    SpecParseError,
    SpecTooLargeError,
    load_spec_document,
    parse_spec_to_skills,
    skills_to_tool_schemas,
)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

class TestLoadSpecDocument:
    def test_dict_passes_through(self, petstore_spec):
        assert load_spec_document(petstore_spec) is petstore_spec

    def test_json_string(self, petstore_spec):
        assert load_spec_document(json.dumps(petstore_spec)) == petstore_spec

    def test_yaml_string(self, petstore_spec):
        assert load_spec_document(yaml.safe_dump(petstore_spec)) == petstore_spec

    def test_too_large(self):
        with pytest.raises(SpecTooLargeError, match="Spec is too large"):
            load_spec_document("x" * (MAX_SPEC_BYTES + 1))

    def test_scalar_document_rejected(self):
        with pytest.raises(SpecParseError):
            load_spec_document("just some text")

    def test_yaml_list_rejected(self):
        with pytest.raises(SpecParseError):
            load_spec_document("- a\n- b\n")

    def test_invalid_yaml_rejected(self):
        with pytest.raises(SpecParseError):
            load_spec_document("paths: [unclosed")

    def test_wrong_type_rejected(self):
        with pytest.raises(SpecParseError):
            load_spec_document(42)


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------

class TestParseSpec:
    def test_openapi3_skill_order_and_names(self, petstore_spec):
        parsed = parse_spec_to_skills(petstore_spec)
        assert [s.name for s in parsed.skills] == [
            "listPets",
            "createPet",
            "showPetById",
            "delete__pets_{petId}",
        ]
        assert parsed.base_url == "https://petstore.example.com/v1"
        assert all(s.base_url == parsed.base_url for s in parsed.skills)

    def test_metadata(self, petstore_spec):
        parsed = parse_spec_to_skills(petstore_spec)
        assert parsed.metadata == {
            "title": "Petstore",
            "version": "1.0.0",
            "description": "Pets for sale",
        }

    def test_descriptions(self, petstore_spec):
        skills = {s.name: s for s in parse_spec_to_skills(petstore_spec).skills}
        assert skills["listPets"].description == "List all pets"
        assert skills["delete__pets_{petId}"].description == "Remove a pet"

    def test_description_falls_back_to_method_and_path(self):
        parsed = parse_spec_to_skills({"paths": {"/ping": {"get": {}}}})
        assert parsed.skills[0].description == "GET /ping"

    def test_parameter_types(self, petstore_spec):
        skill = parse_spec_to_skills(petstore_spec).skills[0]
        assert [(p.name, p.location, p.type) for p in skill.parameters] == [
            ("limit", "query", "integer"),
            ("tag", "query", "string"),
        ]

    def test_path_item_parameters_are_inherited(self, petstore_spec):
        skills = {s.name: s for s in parse_spec_to_skills(petstore_spec).skills}
        for name in ("showPetById", "delete__pets_{petId}"):
            params = skills[name].params_in("path")
            assert [p.name for p in params] == ["petId"]
            assert params[0].required is True

    def test_operation_parameter_overrides_path_item(self, petstore_spec):
        petstore_spec["paths"]["/pets/{petId}"]["get"]["parameters"] = [
            {"name": "petId", "in": "path", "required": True, "description": "The id"},
        ]
        skill = parse_spec_to_skills(petstore_spec).skills[2]
        assert len(skill.parameters) == 1
        assert skill.parameters[0].description == "The id"

    def test_undeclared_path_tokens_are_synthesized(self):
        parsed = parse_spec_to_skills({"paths": {"/users/{userId}/posts/{postId}": {"get": {"operationId": "getPost"}}}})
        params = parsed.skills[0].parameters
        assert [(p.name, p.location, p.required) for p in params] == [
            ("userId", "path", True),
            ("postId", "path", True),
        ]

    def test_request_body(self, petstore_spec):
        skill = parse_spec_to_skills(petstore_spec).skills[1]
        assert skill.request_body is not None
        assert skill.request_body.required is True
        assert skill.request_body.content_type == "application/json"
        assert skill.request_body.schema == {"type": "object"}

    def test_swagger2_base_url(self, swagger_spec):
        parsed = parse_spec_to_skills(swagger_spec)
        assert parsed.base_url == "http://api.weather.example/v2"
        skill = parsed.skills[0]
        assert skill.method == "GET"
        assert [(p.name, p.type) for p in skill.parameters] == [("city", "string"), ("days", "integer")]

    def test_unsupported_methods_are_skipped(self):
        parsed = parse_spec_to_skills({"paths": {"/x": {"get": {}, "head": {}, "options": {}, "summary": "x"}}})
        assert [s.method for s in parsed.skills] == ["GET"]

    def test_no_base_url(self):
        assert parse_spec_to_skills({"paths": {"/x": {"get": {}}}}).base_url == ""

    def test_empty_paths_yield_no_skills(self):
        assert parse_spec_to_skills({"openapi": "3.0.0", "paths": {}}).skills == []

    def test_missing_paths_rejected(self):
        with pytest.raises(SpecParseError):
            parse_spec_to_skills({"openapi": "3.0.0"})

    def test_non_object_operation_rejected(self):
        with pytest.raises(SpecParseError):
            parse_spec_to_skills({"paths": {"/x": {"get": "nope"}}})

    def test_skill_dict_roundtrip_keeps_layout(self, petstore_spec):
        skill = parse_spec_to_skills(petstore_spec).skills[1]
        data = skill.to_dict()
        assert data["operationId"] == "createPet"
        assert data["requestBody"]["contentType"] == "application/json"
        assert Skill.from_dict(data) == skill


# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------

class TestToolSchemas:
    def test_one_function_per_skill(self, petstore_spec):
        skills = parse_spec_to_skills(petstore_spec).skills
        tools = skills_to_tool_schemas(skills)
        assert len(tools) == len(skills)
        assert all(t["type"] == "function" for t in tools)
        assert [t["function"]["name"] for t in tools] == [s.name for s in skills]

    def test_description_includes_method_and_path(self, petstore_spec):
        tool = skills_to_tool_schemas(parse_spec_to_skills(petstore_spec).skills)[0]
        assert tool["function"]["description"] == "List all pets (GET /pets)"

    def test_parameters(self, petstore_spec):
        tool = skills_to_tool_schemas(parse_spec_to_skills(petstore_spec).skills)[0]
        params = tool["function"]["parameters"]
        assert params["type"] == "object"
        assert params["properties"]["limit"] == {"type": "integer", "description": "limit parameter"}
        assert params["properties"]["tag"]["description"] == "Filter by tag"
        assert params["required"] == []

    def test_required_body(self, petstore_spec):
        tool = skills_to_tool_schemas(parse_spec_to_skills(petstore_spec).skills)[1]
        params = tool["function"]["parameters"]
        assert params["properties"]["body"]["type"] == "object"
        assert params["required"] == ["body"]

    def test_required_path_parameter(self, petstore_spec):
        tool = skills_to_tool_schemas(parse_spec_to_skills(petstore_spec).skills)[2]
        assert tool["function"]["parameters"]["required"] == ["petId"]
