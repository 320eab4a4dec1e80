"""Shared fixtures: an in-memory management store and report documents."""

import logging
from typing import Any, Dict, List, Optional

import pytest

from battery_runner.config import RunnerConfig
from battery_runner.services.wmi_store import ManagementStore


class InMemoryStore(ManagementStore):
    """Dictionary-backed stand-in for the WMI store."""

    def __init__(self, namespaces=("root",)):
        self.namespaces = set(namespaces)
        self.schemas: Dict[tuple, List[Any]] = {}
        self.records: Dict[tuple, List[Dict[str, Any]]] = {}
        self.calls: List[str] = []
        self.fail_on: Optional[str] = None

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on == name:
            raise PermissionError(f"Access denied ({name})")

    def namespace_exists(self, namespace):
        self._call("namespace_exists")
        return namespace in self.namespaces

    def create_namespace(self, namespace):
        self._call("create_namespace")
        self.namespaces.add(namespace)

    def schema_fields(self, namespace, class_name):
        self._call("schema_fields")
        fields = self.schemas.get((namespace, class_name))
        return None if fields is None else [f.name for f in fields]

    def create_schema(self, namespace, class_name, fields):
        self._call("create_schema")
        if namespace not in self.namespaces:
            raise LookupError(f"Invalid namespace {namespace}")
        self.schemas[(namespace, class_name)] = list(fields)
        self.records.setdefault((namespace, class_name), [])

    def find_records(self, namespace, class_name, key_field, key):
        self._call("find_records")
        rows = self.records.get((namespace, class_name), [])
        return [dict(r) for r in rows if r.get(key_field) == key]

    def create_record(self, namespace, class_name, values):
        self._call("create_record")
        if (namespace, class_name) not in self.schemas:
            raise LookupError(f"Invalid class {class_name}")
        self.records[(namespace, class_name)].append(dict(values))

    def update_record(self, namespace, class_name, key_field, key, values):
        self._call("update_record")
        for row in self.records[(namespace, class_name)]:
            if row.get(key_field) == key:
                row.update(values)
                return
        raise LookupError(f"No {class_name} with {key_field}={key}")

    def all_records(self, namespace="root\\BatteryReport", class_name="BatteryReport"):
        return self.records.get((namespace, class_name), [])


def make_report_xml(
    computer_name: Optional[str] = "HOST-01",
    design_capacity: str = "50000",
    full_charge_capacity: str = "45000",
    cycle_count: str = "120",
    active_runtime: Optional[str] = "PT5H30M",
    active_runtime_design: Optional[str] = "PT6H",
    standby: Optional[str] = "PT310H",
    standby_design: Optional[str] = "P14DT2H",
    standby_tag: str = "ModernStandby",
    namespace: bool = True,
) -> str:
    def node(tag, value):
        return "" if value is None else f"<{tag}>{value}</{tag}>"

    xmlns = ' xmlns="http://schemas.microsoft.com/battery/2012"' if namespace else ""
    return f"""<?xml version="1.0" encoding="utf-8"?>
<BatteryReport{xmlns}>
  <SystemInformation>
    {node("ComputerName", computer_name)}
    <SystemManufacturer>LENOVO</SystemManufacturer>
    <SystemProductName>20XW00ABUS</SystemProductName>
  </SystemInformation>
  <Batteries>
    <Battery>
      <Id>5B10W13930</Id>
      <Manufacturer>SMP</Manufacturer>
      <Chemistry>LiP</Chemistry>
      {node("DesignCapacity", design_capacity)}
      {node("FullChargeCapacity", full_charge_capacity)}
      {node("CycleCount", cycle_count)}
    </Battery>
  </Batteries>
  <RuntimeEstimates>
    <FullChargeCapacity>
      {node("ActiveRuntime", active_runtime)}
      {node(standby_tag, standby)}
    </FullChargeCapacity>
    <DesignCapacity>
      {node("ActiveRuntime", active_runtime_design)}
      {node(standby_tag, standby_design)}
    </DesignCapacity>
  </RuntimeEstimates>
</BatteryReport>
"""


class FakeGenerator:
    """Writes a canned XML report instead of running powercfg."""

    def __init__(self, path, xml: str = None, error: Exception = None):
        self.path = path
        self.xml = xml
        self.error = error
        self.calls = 0
        self.cleaned = False

    def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        self.path.write_text(self.xml, encoding="utf-8")
        return str(self.path)

    def cleanup(self):
        self.cleaned = True


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def config(tmp_path):
    return RunnerConfig(output_dir=str(tmp_path))


@pytest.fixture
def report_xml():
    return make_report_xml()


@pytest.fixture
def restore_root_logging():
    """main() reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
