"""Sub-entity detection for parsed utility documents.

Electricity and gas bills are detected independently and may both be
present. A meter reading is only a sub-entity of its own when neither bill
is present; a reading printed on a bill belongs to the bill.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from docflow.schemas.submissions import SkippedEntity, SubEntity
from docflow.utils.phone import normalize_phone


@dataclass
class Detection:
    entities: list[SubEntity] = field(default_factory=list)
    skipped: list[SkippedEntity] = field(default_factory=list)


def _first(items: Any) -> dict:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def bills_from_fields(fields: dict[str, Any], classification: Optional[str] = None) -> dict[str, Any]:
    """Return the ``bills`` block, building one from flat fields when absent."""
    bills = fields.get("bills")
    if isinstance(bills, dict):
        return bills

    built: dict[str, Any] = {"electricity": [], "gas": [], "meter_reading": None}
    if classification == "electricity" or _text(fields.get("mprn")):
        built["electricity"].append({
            "electricity_details": {
                "meter_details": {
                    "mprn": fields.get("mprn"),
                    "mcc": fields.get("mcc_type"),
                    "dg": fields.get("dg_type"),
                }
            }
        })
    if classification == "gas" or _text(fields.get("gprn")):
        built["gas"].append({"gas_details": {"meter_details": {"gprn": fields.get("gprn")}}})

    reading = fields.get("meter_reading")
    if isinstance(reading, dict):
        built["meter_reading"] = reading
    elif _text(reading):
        built["meter_reading"] = {"read_value": reading}
    elif classification == "meter":
        built["meter_reading"] = {}

    if _text(fields.get("phone")):
        built["cus_details"] = [{"details": {"phone": fields.get("phone")}}]
    return built


def document_phone(fields: dict[str, Any]) -> Optional[str]:
    """Phone printed on the document: bill customer details first, then the flat field."""
    bills = fields.get("bills") if isinstance(fields.get("bills"), dict) else {}
    phone = _dig(_first(bills.get("cus_details")), "details", "phone")
    return normalize_phone(_text(phone)) or normalize_phone(_text(fields.get("phone")))


def detect_sub_entities(fields: dict[str, Any], classification: Optional[str] = None) -> Detection:
    """Find the submittable utility units in a parsed document.

    Entities missing their mandatory identifier are reported in ``skipped``
    and never returned as submittable.
    """
    bills = bills_from_fields(fields or {}, classification)
    detection = Detection()

    electricity_bills = bills.get("electricity") or []
    gas_bills = bills.get("gas") or []
    has_electricity = isinstance(electricity_bills, list) and len(electricity_bills) > 0
    has_gas = isinstance(gas_bills, list) and len(gas_bills) > 0

    if has_electricity:
        meter = _dig(_first(electricity_bills), "electricity_details", "meter_details") or {}
        mprn = _text(meter.get("mprn"))
        if mprn:
            detection.entities.append(SubEntity(
                type="electricity",
                mprn=mprn,
                mcc_type=_text(meter.get("mcc")),
                dg_type=_text(meter.get("dg")),
            ))
        else:
            detection.skipped.append(SkippedEntity(type="electricity", reason="Missing MPRN"))

    if has_gas:
        meter = _dig(_first(gas_bills), "gas_details", "meter_details") or {}
        gprn = _text(meter.get("gprn"))
        if gprn:
            detection.entities.append(SubEntity(type="gas", gprn=gprn))
        else:
            detection.skipped.append(SkippedEntity(type="gas", reason="Missing GPRN"))

    reading = bills.get("meter_reading")
    if isinstance(reading, dict) and not has_electricity and not has_gas:
        read_value = _text(reading.get("read_value"))
        if read_value:
            detection.entities.append(SubEntity(
                type="meter",
                utility=_text(reading.get("utility")) or "gas",
                read_value=read_value,
                unit=_text(reading.get("unit")) or "m3",
                meter_make=_text(reading.get("meter_make")),
                meter_model=_text(reading.get("meter_model")),
                raw_text=_text(reading.get("raw_text")),
            ))
        else:
            detection.skipped.append(SkippedEntity(type="meter", reason="Missing meter reading value"))

    return detection
