"""Tests for the battery record and its upsert."""

import pytest

from battery_runner.errors import StoreWriteError
from battery_runner.services.battery_service import build_battery_summary, health_verdict
from battery_runner.services.record_service import BatteryRecord, upsert_record
from battery_runner.services.report_parser import parse_report
from battery_runner.services.schema_service import ensure_schema
from conftest import make_report_xml

NAMESPACE = "root\\BatteryReport"
CLASS_NAME = "BatteryReport"


@pytest.fixture
def provisioned(store):
    ensure_schema(store, NAMESPACE, CLASS_NAME)
    return store


class TestBatteryRecord:
    def test_from_report_normalizes_durations(self):
        record = BatteryRecord.from_report(parse_report(make_report_xml()))

        assert record.active_runtime == "05:30:00"
        assert record.active_runtime_at_design_capacity == "06:00:00"
        assert record.modern_standby == "310:00:00"
        assert record.modern_standby_at_design_capacity == "14:02:00:00"

    def test_missing_durations_default_to_zero(self):
        report = parse_report(make_report_xml(active_runtime=None, standby="garbage"))
        record = BatteryRecord.from_report(report)
        assert record.active_runtime == "00:00:00"
        assert record.modern_standby == "00:00:00"

    def test_store_values_use_class_property_names(self):
        values = BatteryRecord("HOST-01", design_capacity=1).to_store_values()
        assert values["ComputerName"] == "HOST-01"
        assert values["DesignCapacity"] == 1
        assert values["ActiveRuntime"] == "00:00:00"
        assert values["SystemManufacturer"] is None


class TestUpsertRecord:
    def test_creates_new_record(self, provisioned):
        action = upsert_record(
            provisioned, NAMESPACE, CLASS_NAME, "HOST-01", {"CycleCount": 120}
        )
        assert action == "created"
        assert provisioned.all_records() == [{"ComputerName": "HOST-01", "CycleCount": 120}]

    def test_second_call_updates_in_place(self, provisioned):
        upsert_record(provisioned, NAMESPACE, CLASS_NAME, "HOST-01", {"CycleCount": 120, "DesignCapacity": 50000})
        action = upsert_record(provisioned, NAMESPACE, CLASS_NAME, "HOST-01", {"CycleCount": 130, "DesignCapacity": 49000})

        assert action == "updated"
        records = provisioned.all_records()
        assert len(records) == 1
        assert records[0]["CycleCount"] == 130
        assert records[0]["DesignCapacity"] == 49000

    def test_update_only_touches_supplied_fields(self, provisioned):
        upsert_record(provisioned, NAMESPACE, CLASS_NAME, "HOST-01", {"CycleCount": 120, "DesignCapacity": 50000})
        upsert_record(provisioned, NAMESPACE, CLASS_NAME, "HOST-01", {"CycleCount": 121})

        assert provisioned.all_records()[0]["DesignCapacity"] == 50000

    def test_key_in_fields_cannot_change_identity(self, provisioned):
        upsert_record(provisioned, NAMESPACE, CLASS_NAME, "HOST-01", {"CycleCount": 1})
        upsert_record(provisioned, NAMESPACE, CLASS_NAME, "HOST-01", {"ComputerName": "OTHER", "CycleCount": 2})

        records = provisioned.all_records()
        assert [r["ComputerName"] for r in records] == ["HOST-01"]

    def test_records_are_per_identity(self, provisioned):
        upsert_record(provisioned, NAMESPACE, CLASS_NAME, "HOST-01", {"CycleCount": 1})
        upsert_record(provisioned, NAMESPACE, CLASS_NAME, "HOST-02", {"CycleCount": 2})
        assert len(provisioned.all_records()) == 2

    def test_empty_identity_rejected(self, provisioned):
        with pytest.raises(ValueError):
            upsert_record(provisioned, NAMESPACE, CLASS_NAME, "  ", {})

    def test_store_failure_raises_store_write_error(self, provisioned):
        provisioned.fail_on = "create_record"
        with pytest.raises(StoreWriteError):
            upsert_record(provisioned, NAMESPACE, CLASS_NAME, "HOST-01", {"CycleCount": 1})

    def test_missing_class_raises_store_write_error(self, store):
        with pytest.raises(StoreWriteError):
            upsert_record(store, NAMESPACE, CLASS_NAME, "HOST-01", {"CycleCount": 1})


class TestBatterySummary:
    def test_health_verdict_thresholds(self):
        assert health_verdict(None) == "Unknown"
        assert health_verdict(95.0) == "Excellent"
        assert health_verdict(85.0) == "Good"
        assert health_verdict(75.0) == "Fair"
        assert health_verdict(65.0) == "Poor"
        assert health_verdict(40.0) == "Critical"

    def test_summary_from_record(self):
        record = BatteryRecord(
            "HOST-01",
            design_capacity=50000,
            full_charge_capacity=45000,
            cycle_count=120,
            active_runtime="05:30:00",
        )
        summary = build_battery_summary(record)

        assert summary["capacity_percent"] == 90.0
        assert summary["wear_level_percent"] == 10.0
        assert summary["health_verdict"] == "Excellent"
        assert summary["active_runtime_seconds"] == 19800
        assert "Cycle Count: 120" in summary["human_readable"]

    def test_zero_design_capacity(self):
        summary = build_battery_summary(BatteryRecord("HOST-01"))
        assert summary["capacity_percent"] is None
        assert summary["health_verdict"] == "Unknown"
