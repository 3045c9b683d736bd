"""Tests for prompt construction and presets."""

import pytest

from pdf_layout_server.layout import NodeType, build_layout_prompt, get_preset
from pdf_layout_server.layout.presets import PRESETS, validate_extraction
from pdf_layout_server.layout.prompts import DATA_END, DATA_START, TREE_END, TREE_START


class TestBuildLayoutPrompt:
    def test_tree_only(self):
        prompt = build_layout_prompt("--- Page 1 ---\n[heading 24pt] Experience")

        assert TREE_START in prompt
        assert TREE_END in prompt
        assert DATA_START not in prompt
        assert "Additional instructions" not in prompt
        assert prompt.endswith("Document:\n--- Page 1 ---\n[heading 24pt] Experience")

    def test_lists_every_node_type(self):
        prompt = build_layout_prompt("text")
        for node_type in NodeType:
            assert f'"{node_type.value}"' in prompt

    def test_literal_braces_rendered(self):
        assert '{"page": 1}' in build_layout_prompt("text")

    def test_with_schema(self):
        prompt = build_layout_prompt("text", schema={"name": "string", "skills": ["string"]})

        assert DATA_START in prompt
        assert DATA_END in prompt
        assert '"skills": [' in prompt
        assert prompt.index(TREE_START) < prompt.index(DATA_START)

    def test_empty_schema_requests_no_data(self):
        assert DATA_START not in build_layout_prompt("text", schema={})

    def test_with_instructions(self):
        prompt = build_layout_prompt("text", instructions="  Dates as YYYY-MM  ")
        assert "Additional instructions:\nDates as YYYY-MM\n\nDocument:\ntext" in prompt

    def test_blank_instructions_ignored(self):
        assert "Additional instructions" not in build_layout_prompt("text", instructions="  \n")

    def test_document_text_kept_verbatim(self):
        text = 'Braces {like this} and "quotes"'
        assert build_layout_prompt(text).endswith(text)


class TestPresets:
    def test_builtin_names(self):
        assert sorted(PRESETS) == ["contract", "invoice", "job_description", "medical", "resume"]

    def test_get_preset(self):
        preset = get_preset("resume")
        assert preset.name == "resume"
        assert "experience" in preset.schema
        assert preset.instructions

    def test_unknown_preset(self):
        with pytest.raises(KeyError, match="available: contract"):
            get_preset("recipe")

    def test_presets_produce_data_prompts(self):
        for preset in PRESETS.values():
            prompt = build_layout_prompt("text", preset.schema, preset.instructions)
            assert DATA_START in prompt


class TestValidateExtraction:
    def test_complete_resume(self):
        data = {
            "personal_info": {
                "name": "Jane Doe",
                "email": "jane@example.com",
                "phone": "555-0100",
                "location": "Berlin",
            },
            "professional_summary": "Backend engineer",
            "experience": [
                {
                    "company": "X",
                    "position": "Engineer",
                    "duration": "Jan 2020 - Present",
                    "responsibilities": ["Built Y"],
                }
            ],
            "education": [],
            "skills": ["Python"],
            "certifications": [],
        }

        report = validate_extraction(data, get_preset("resume").schema)

        assert report.valid is True
        assert report.missing_fields == []
        assert report.invalid_fields == []

    def test_missing_and_null_fields(self):
        report = validate_extraction(
            {"personal_info": {"name": "Jane", "email": None}},
            get_preset("resume").schema,
        )

        assert report.valid is False
        assert report.missing_fields == [
            "professional_summary",
            "experience",
            "education",
            "skills",
            "certifications",
            "personal_info.email",
            "personal_info.phone",
            "personal_info.location",
        ]

    def test_nested_type_errors(self):
        data = {
            "personal_info": "Jane Doe",
            "experience": [{"company": 42, "position": "Engineer"}],
        }

        report = validate_extraction(data, {
            "personal_info": {"name": "string"},
            "experience": [{"company": "string", "position": "string"}],
        })

        assert report.invalid_fields == [
            "personal_info (expected object, got string)",
            "experience.0.company (expected string, got number)",
        ]
        assert report.missing_fields == []

    def test_number_and_list_items(self):
        report = validate_extraction(
            {"total": True, "subtotal": 9.5, "tags": ["a", 1]},
            {"total": "number", "subtotal": "number", "tags": ["string"]},
        )

        assert report.invalid_fields == [
            "total (expected number, got boolean)",
            "tags.1 (expected string, got number)",
        ]

    def test_free_form_schema_values_accept_anything(self):
        report = validate_extraction(
            {"date": 20240101}, {"date": "date in YYYY-MM-DD format"}
        )
        assert report.valid is True
