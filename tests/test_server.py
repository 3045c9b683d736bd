"""Tests for the layout analysis REST API.

Uses httpx TestClient against the app with a LayoutAnalyzer whose
generation client is a Mock, so no model is ever called.
"""

import base64
import json
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from pdf_layout_server import server
from pdf_layout_server.layout import LayoutAnalyzer, ModelError, ResponseCache
from pdf_layout_server.layout.prompts import DATA_START


@pytest.fixture
def generation_client(make_response, resume_tree_payload):
    client = Mock()
    client.generate.return_value = make_response(
        tree=resume_tree_payload, data={"name": "Jane Doe"}
    )
    return client


@pytest.fixture
def client(monkeypatch, generation_client):
    analyzer = LayoutAnalyzer(generation_client=generation_client, cache=ResponseCache())
    monkeypatch.setattr(server, "_analyzer", analyzer)
    return TestClient(server.app)


def _upload(client, pdf_bytes, filename="resume.pdf", **form):
    return client.post(
        "/api/v1/layout/analyze",
        files={"file": (filename, pdf_bytes, "application/pdf")},
        data=form,
    )


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_presets(self, client):
        response = client.get("/api/v1/layout/presets")
        assert response.status_code == 200
        assert "resume" in response.json()["presets"]


class TestAnalyzeUpload:
    def test_analyze(self, client, sample_pdf_bytes):
        response = _upload(client, sample_pdf_bytes, schema=json.dumps({"name": "string"}))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["extracted_data"] == {"name": "Jane Doe"}
        assert body["document_tree"]["type"] == "root"
        assert body["document_tree_preview"].startswith("root\n  header (level 1): Experience")
        assert body["element_counts"] == {
            "headers": 1,
            "tables": 0,
            "lists": 1,
            "total_elements": 6,
        }
        assert body["elements"]["headers"] == [{"level": 1, "text": "Experience"}]
        assert body["elements"]["paragraphs_preview"] == ["Worked at X"]
        assert body["text"] is None
        assert body["tree_source"] == "strict"
        assert body["page_count"] == 1
        assert body["cached"] is False

    def test_return_flags(self, client, sample_pdf_bytes):
        response = _upload(
            client,
            sample_pdf_bytes,
            return_tree="false",
            return_elements="false",
            return_text="true",
        )

        body = response.json()
        assert body["document_tree"] is None
        assert body["element_counts"] is None
        assert body["elements"] is None
        assert body["text"] == "Experience\nWorked at X\n• Built Y"

    def test_preset(self, client, generation_client, sample_pdf_bytes):
        response = _upload(client, sample_pdf_bytes, preset="resume", instructions="Be exact")

        assert response.status_code == 200
        prompt = generation_client.generate.call_args[0][0]
        assert DATA_START in prompt
        assert "professional_summary" in prompt
        assert "Be exact" in prompt

    def test_unknown_preset(self, client, generation_client, sample_pdf_bytes):
        response = _upload(client, sample_pdf_bytes, preset="recipe")

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REQUEST"
        generation_client.generate.assert_not_called()

    def test_invalid_schema_json(self, client, sample_pdf_bytes):
        response = _upload(client, sample_pdf_bytes, schema="{not json")
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REQUEST"

    def test_schema_must_be_object(self, client, sample_pdf_bytes):
        response = _upload(client, sample_pdf_bytes, schema='["name"]')
        assert response.status_code == 400

    def test_non_pdf_filename(self, client, sample_pdf_bytes):
        response = _upload(client, sample_pdf_bytes, filename="resume.docx")
        assert response.status_code == 400
        assert response.json()["message"] == "Only PDF files are supported"

    def test_not_a_pdf(self, client, generation_client):
        response = _upload(client, b"just some text")

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_PDF"
        generation_client.generate.assert_not_called()

    def test_scanned_pdf(self, client, scanned_pdf_bytes):
        response = _upload(client, scanned_pdf_bytes)
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_PDF"

    def test_too_large(self, client, monkeypatch, sample_pdf_bytes):
        monkeypatch.setattr(server, "MAX_UPLOAD_SIZE", 100)

        response = _upload(client, sample_pdf_bytes)

        assert response.status_code == 413
        assert response.json()["code"] == "PDF_TOO_LARGE"

    def test_generation_failure(self, client, generation_client, sample_pdf_bytes):
        generation_client.generate.side_effect = ModelError("anthropic request failed")

        response = _upload(client, sample_pdf_bytes)

        assert response.status_code == 502
        assert response.json() == {
            "code": "GENERATION_FAILED",
            "message": "anthropic request failed",
        }

    def test_degraded_response(self, client, generation_client, sample_pdf_bytes):
        generation_client.generate.return_value = "I could not read this document."

        response = _upload(client, sample_pdf_bytes)

        assert response.status_code == 200
        body = response.json()
        assert body["degraded"] is True
        assert body["document_tree"]["type"] == "other"
        assert body["extracted_data"] is None

    def test_repeat_request_served_from_cache(self, client, generation_client, sample_pdf_bytes):
        _upload(client, sample_pdf_bytes)
        response = _upload(client, sample_pdf_bytes)

        assert response.json()["cached"] is True
        generation_client.generate.assert_called_once()

    def test_extraction_report(
        self, client, generation_client, make_response, resume_tree_payload, sample_pdf_bytes
    ):
        generation_client.generate.return_value = make_response(
            tree=resume_tree_payload, data={"personal_info": {"name": "Jane Doe"}}
        )

        response = _upload(client, sample_pdf_bytes, preset="resume")

        report = response.json()["extraction_report"]
        assert report["valid"] is False
        assert "personal_info.email" in report["missing_fields"]
        assert report["invalid_fields"] == []

    def test_deep_tree_omitted(
        self, client, generation_client, make_response, deep_tree_text, sample_pdf_bytes
    ):
        generation_client.generate.return_value = make_response(tree=deep_tree_text(3000))

        response = _upload(client, sample_pdf_bytes, return_text="true")

        assert response.status_code == 200
        body = response.json()
        assert body["tree_too_deep"] is True
        assert body["document_tree"] is None
        assert body["document_tree_preview"] is None
        assert body["element_counts"]["total_elements"] == 3001
        assert body["elements"]["sections_count"] == 3000
        assert body["text"].count("nested") == 3000

    def test_tree_at_depth_limit_returned(
        self, client, generation_client, make_response, deep_tree_text, sample_pdf_bytes
    ):
        generation_client.generate.return_value = make_response(
            tree=deep_tree_text(server.MAX_RESPONSE_TREE_DEPTH)
        )

        body = _upload(client, sample_pdf_bytes).json()

        assert body["tree_too_deep"] is False
        assert body["document_tree"]["children"][0]["type"] == "section"


class TestAnalyzeBase64:
    def test_analyze(self, client, sample_pdf_bytes):
        response = client.post(
            "/api/v1/layout/analyze/base64",
            json={
                "pdf": base64.b64encode(sample_pdf_bytes).decode(),
                "schema": {"name": "string"},
                "return_text": True,
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["extracted_data"] == {"name": "Jane Doe"}
        assert body["text"].startswith("Experience")

    def test_data_url_prefix(self, client, sample_pdf_bytes):
        encoded = "data:application/pdf;base64," + base64.b64encode(sample_pdf_bytes).decode()
        response = client.post("/api/v1/layout/analyze/base64", json={"pdf": encoded})
        assert response.status_code == 200

    def test_invalid_base64(self, client):
        response = client.post("/api/v1/layout/analyze/base64", json={"pdf": "not base64!!"})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REQUEST"

    def test_missing_pdf(self, client):
        response = client.post("/api/v1/layout/analyze/base64", json={})
        assert response.status_code == 422
