"""Ready-made extraction schemas and checks of extracted data against a schema."""

from dataclasses import dataclass
from typing import Any

from .models import ExtractionReport


@dataclass(frozen=True)
class ExtractionPreset:
    name: str
    schema: dict[str, Any]
    instructions: str


RESUME = ExtractionPreset(
    name="resume",
    schema={
        "personal_info": {
            "name": "string",
            "email": "string",
            "phone": "string",
            "location": "string",
        },
        "professional_summary": "string",
        "experience": [
            {
                "company": "string",
                "position": "string",
                "duration": "string",
                "responsibilities": ["string"],
            }
        ],
        "education": [
            {
                "institution": "string",
                "degree": "string",
                "field": "string",
                "graduation_date": "string",
            }
        ],
        "skills": ["string"],
        "certifications": ["string"],
    },
    instructions="""Extract resume information according to the schema.
- If sections are not clearly labeled, infer them from the content
- For dates, use the format "Month Year - Month Year" or "Present"
- Keep company names and positions exactly as written
- Extract all skills listed, even if they appear under different categories""",
)

JOB_DESCRIPTION = ExtractionPreset(
    name="job_description",
    schema={
        "job_title": "string",
        "company": "string",
        "location": "string",
        "employment_type": "string",
        "salary_range": "string",
        "job_summary": "string",
        "key_responsibilities": ["string"],
        "required_qualifications": ["string"],
        "preferred_qualifications": ["string"],
        "required_skills": ["string"],
        "benefits": ["string"],
    },
    instructions="""Extract job posting information.
- Keep key responsibilities complete and specific
- Separate required from preferred qualifications
- List every required skill mentioned
- Include all listed benefits""",
)

INVOICE = ExtractionPreset(
    name="invoice",
    schema={
        "invoice_number": "string",
        "invoice_date": "string",
        "due_date": "string",
        "vendor": {"name": "string", "address": "string", "tax_id": "string"},
        "customer": {"name": "string", "address": "string"},
        "line_items": [
            {
                "description": "string",
                "quantity": "number",
                "unit_price": "number",
                "total": "number",
            }
        ],
        "subtotal": "number",
        "tax": "number",
        "total": "number",
        "payment_terms": "string",
    },
    instructions="""Extract invoice or receipt information.
- Capture every line item with its quantity and prices
- Extract all dates in YYYY-MM-DD format
- Include all tax information""",
)

CONTRACT = ExtractionPreset(
    name="contract",
    schema={
        "document_type": "string",
        "parties": ["string"],
        "effective_date": "string",
        "expiration_date": "string",
        "term": "string",
        "key_terms": {
            "payment": "string",
            "termination": "string",
            "confidentiality": "string",
            "liability": "string",
        },
        "obligations": {"party_a": ["string"], "party_b": ["string"]},
        "special_clauses": ["string"],
    },
    instructions="""Extract contract terms.
- Name every party exactly as written
- Summarize each key term in the contract's own wording
- List special clauses separately from the standard terms""",
)

MEDICAL = ExtractionPreset(
    name="medical",
    schema={
        "patient": {"name": "string", "date_of_birth": "string", "medical_id": "string"},
        "provider": {"name": "string", "license_number": "string"},
        "visit_details": {
            "date": "string",
            "reason": "string",
            "diagnosis": "string",
            "treatment": "string",
        },
        "medications": [{"name": "string", "dosage": "string", "frequency": "string"}],
        "lab_results": {"test_name": "string", "result": "string", "reference_range": "string"},
    },
    instructions="""Extract medical record information.
- Copy medication names and dosages exactly
- Use null for any field not stated in the document""",
)

PRESETS: dict[str, ExtractionPreset] = {
    preset.name: preset for preset in (RESUME, JOB_DESCRIPTION, INVOICE, CONTRACT, MEDICAL)
}


def get_preset(name: str) -> ExtractionPreset:
    """Look up a preset by name.

    Raises:
        KeyError: If no preset has that name.
    """
    try:
        return PRESETS[name]
    except KeyError:
        raise KeyError(
            f"Unknown extraction preset {name!r}, available: {', '.join(sorted(PRESETS))}"
        ) from None


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _expected_type(expected: Any) -> str | None:
    if isinstance(expected, dict):
        return "object"
    if isinstance(expected, list):
        return "array"
    if expected in ("string", "number", "boolean"):
        return expected
    # Free-form descriptions such as "date, YYYY-MM-DD" accept any value
    return None


def validate_extraction(data: dict[str, Any], schema: dict[str, Any]) -> ExtractionReport:
    """Check extracted data against the schema it was requested with.

    A field is missing when its key is absent or null, since the model is
    told to use null for anything the document does not state. Nested
    objects are checked field by field. For a list schema such as
    ``[{"company": "string"}]`` every element is checked against the first
    schema entry.

    Args:
        data: Extracted data returned by the model.
        schema: Schema mapping field names to "string", "number",
            "boolean", nested objects or one-element lists.

    Returns:
        ExtractionReport; ``valid`` is True when nothing is missing or
        invalid.
    """
    missing: list[str] = []
    invalid: list[str] = []

    stack: list[tuple[Any, Any, str]] = [(data, schema, "")]
    while stack:
        value, expected, path = stack.pop()
        wanted = _expected_type(expected)
        if wanted is None:
            continue
        actual = _json_type(value)
        if actual != wanted:
            invalid.append(f"{path or '<root>'} (expected {wanted}, got {actual})")
            continue

        children: list[tuple[Any, Any, str]] = []
        if isinstance(expected, dict):
            for key, expected_field in expected.items():
                field_path = f"{path}.{key}" if path else key
                if value.get(key) is None:
                    missing.append(field_path)
                else:
                    children.append((value[key], expected_field, field_path))
        elif expected:
            children = [(item, expected[0], f"{path}.{idx}") for idx, item in enumerate(value)]
        # Reversed so fields are reported in schema order
        stack.extend(reversed(children))

    return ExtractionReport(
        valid=not missing and not invalid,
        missing_fields=missing,
        invalid_fields=invalid,
    )
