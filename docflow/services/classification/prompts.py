"""Prompt text for document classification and extraction."""

import json
from typing import Any, Optional

UTILITY_SYSTEM_PROMPT = """You are an expert document classifier for Irish utility bills and meter readings.

Analyze the document and:
1. Classify it as ONE of: "meter", "electricity", or "gas"
2. Extract ALL relevant fields with confidence scores (0-1)

CLASSIFICATION RULES:
- meter: a meter reading submission (photo of dials or a digital display, a single reading number, phrases like "submit reading"). NO invoice elements, NO supplier logos.
- electricity: an electricity bill (keywords: MPRN, MCC, DG, kWh, Electric Ireland, Bord Gais Energy, SSE Airtricity, unit rate, standing charge, PSO levy).
- gas: a gas bill (keywords: GPRN, m3, therms, gas unit rate, gas standing charge, Flogas, Energia).

A single scan may contain both an electricity and a gas bill. Report every bill you find under "bills".
A meter reading printed on a bill belongs to that bill.

FIELD EXTRACTION (extract ALL that apply):
- phone: customer phone number in international format (default +353 for Irish numbers)
- mprn: electricity Meter Point Reference Number (11 digits, starts with 10)
- gprn: Gas Point Reference Number (7-11 digits, may contain spaces or hyphens)
- mcc_type: Market Customer Class (e.g. "01", "Domestic", "Commercial")
- dg_type: Demand Group (e.g. "DG1", "Urban", "Night Saver")
- meter_reading: the reading value for a meter submission
- account_number: customer account number
- address: service address

Return ONLY valid JSON in this exact format:
{
  "classification": "electricity" | "gas" | "meter",
  "confidence": 0.95,
  "fields": {
    "phone": "+353871234567",
    "mprn": "10012345678",
    "mcc_type": "01",
    "dg_type": "DG1",
    "account_number": "ACC123456",
    "address": "1 Main St, Dublin",
    "bills": {
      "cus_details": [{"details": {"customer_name": "", "phone": "", "address": {"line_1": "", "line_2": "", "city": "", "county": "", "eircode": ""}}}],
      "electricity": [{"electricity_details": {"meter_details": {"mprn": "", "mcc": "", "dg": ""}}}],
      "gas": [{"gas_details": {"meter_details": {"gprn": ""}}}],
      "meter_reading": {"utility": "gas", "read_value": "", "unit": "m3", "meter_make": "", "meter_model": "", "meter_serial": "", "read_date": "", "raw_text": ""}
    }
  },
  "field_confidence": {"phone": 0.9, "mprn": 0.95, "mcc_type": 0.7, "dg_type": 0.6},
  "low_confidence_fields": ["mcc_type", "dg_type"]
}

Use empty arrays for bill types that are not present and null for a missing meter_reading."""

IMAGE_USER_PROMPT = (
    "Analyze this document and provide classification and field extraction "
    "in the required JSON format."
)

PDF_USER_PROMPT_TEMPLATE = (
    "Analyze the following text extracted from the first pages of a PDF document "
    "and provide classification and field extraction in the required JSON format.\n\n"
    "--- DOCUMENT TEXT ---\n{text}\n--- END DOCUMENT TEXT ---"
)

DOCUMENT_TYPE_SYSTEM_PROMPT = (
    "You are a document classification AI. Classify documents into one of the "
    "predefined types based on their content and keywords. Return only JSON with "
    "the document type name and confidence score."
)


def extraction_schema_instructions(schema: Optional[dict[str, Any]]) -> str:
    """Render a field schema as extra extraction instructions."""
    if not schema:
        return ""

    lines = ["", "ADDITIONAL FIELDS (add these keys to \"fields\"):"]
    for name, definition in schema.items():
        if isinstance(definition, dict):
            field_type = definition.get("type", "string")
            description = definition.get("description", "")
            required = " (required)" if definition.get("required") else ""
            lines.append(f"- {name} [{field_type}]{required}: {description}".rstrip(": "))
        else:
            lines.append(f"- {name}: {definition}")
    return "\n".join(lines)


def document_type_prompt(document_types: list[dict[str, Any]], document_text: Optional[str] = None) -> str:
    """Build the catalog classification prompt."""
    described = []
    for doc_type in document_types:
        keywords = ", ".join(doc_type.get("keywords") or []) or "none"
        described.append(
            f"- {doc_type['name']}: {doc_type.get('description') or 'No description'}\n"
            f"  Keywords: {keywords}"
        )

    prompt = "Classify this document into one of the following types:\n\n" + "\n\n".join(described)
    if document_text:
        prompt += f"\n\n--- DOCUMENT TEXT ---\n{document_text}\n--- END DOCUMENT TEXT ---"
    prompt += "\n\nReturn JSON: " + json.dumps({"document_type": "Type Name", "confidence": 0.95})
    return prompt
