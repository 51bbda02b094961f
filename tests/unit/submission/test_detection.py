"""Unit tests for sub-entity detection."""

from docflow.services.submission.detection import bills_from_fields, detect_sub_entities, document_phone


def bills(electricity=None, gas=None, meter_reading=None):
    return {
        "bills": {
            "cus_details": [{"details": {"phone": "087 111 2222"}}],
            "electricity": electricity or [],
            "gas": gas or [],
            "meter_reading": meter_reading,
        }
    }


def electricity_bill(mprn="10001234567"):
    return {"electricity_details": {"meter_details": {"mprn": mprn, "mcc": "01", "dg": "DG1"}}}


def gas_bill(gprn="1234567"):
    return {"gas_details": {"meter_details": {"gprn": gprn}}}


class TestBillOverMeterPrecedence:
    def test_bill_with_reading_yields_only_the_bill(self):
        fields = bills(electricity=[electricity_bill()], meter_reading={"read_value": "4521", "unit": "kWh"})

        detection = detect_sub_entities(fields)

        assert [e.type for e in detection.entities] == ["electricity"]
        assert detection.entities[0].mprn == "10001234567"
        assert detection.entities[0].mcc_type == "01"
        assert detection.entities[0].dg_type == "DG1"

    def test_standalone_reading_yields_meter(self):
        fields = bills(meter_reading={"read_value": "4521", "meter_make": "Landis"})

        detection = detect_sub_entities(fields)

        assert len(detection.entities) == 1
        meter = detection.entities[0]
        assert meter.type == "meter"
        assert meter.read_value == "4521"
        assert meter.utility == "gas"
        assert meter.unit == "m3"
        assert meter.meter_make == "Landis"

    def test_electricity_and_gas_are_independent(self):
        fields = bills(electricity=[electricity_bill()], gas=[gas_bill()])

        detection = detect_sub_entities(fields)

        assert [e.type for e in detection.entities] == ["electricity", "gas"]


class TestMandatoryFieldGating:
    def test_electricity_without_mprn_is_skipped(self):
        detection = detect_sub_entities(bills(electricity=[electricity_bill(mprn="")]))

        assert detection.entities == []
        assert [(s.type, s.reason) for s in detection.skipped] == [("electricity", "Missing MPRN")]

    def test_gas_without_gprn_is_skipped(self):
        detection = detect_sub_entities(bills(gas=[gas_bill(gprn=None)]))

        assert detection.entities == []
        assert [(s.type, s.reason) for s in detection.skipped] == [("gas", "Missing GPRN")]

    def test_skipped_electricity_does_not_revive_meter(self):
        fields = bills(electricity=[electricity_bill(mprn="")], meter_reading={"read_value": "88"})

        detection = detect_sub_entities(fields)

        assert detection.entities == []

    def test_reading_without_value_is_skipped(self):
        detection = detect_sub_entities(bills(meter_reading={"unit": "kWh"}))

        assert detection.entities == []
        assert detection.skipped[0].type == "meter"

    def test_nothing_detected(self):
        detection = detect_sub_entities(bills())

        assert detection.entities == []
        assert detection.skipped == []


class TestFlatFields:
    def test_flat_electricity_fields(self):
        fields = {"mprn": "10009999999", "mcc_type": "02", "dg_type": "DG6", "phone": "+353871234567"}

        built = bills_from_fields(fields, "electricity")
        detection = detect_sub_entities(fields, "electricity")

        assert built["cus_details"][0]["details"]["phone"] == "+353871234567"
        assert detection.entities[0].mprn == "10009999999"

    def test_flat_meter_reading_string(self):
        detection = detect_sub_entities({"meter_reading": "00451"}, "meter")

        assert detection.entities[0].type == "meter"
        assert detection.entities[0].read_value == "00451"


class TestDocumentPhone:
    def test_bill_customer_phone_first(self):
        fields = bills()
        fields["phone"] = "+353 1 555 0000"

        assert document_phone(fields) == "0871112222"

    def test_flat_phone_fallback(self):
        assert document_phone({"phone": "0035387 123 4567"}) == "353871234567"

    def test_missing_phone(self):
        assert document_phone({}) is None
