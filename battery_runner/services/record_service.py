"""Per-machine battery record and its upsert into the inventory class.

One record per ComputerName: the first run for a machine creates it, later
runs overwrite it in place. There is no history, only the latest state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..errors import StoreWriteError
from .durations import ZERO_DURATION, normalize_duration
from .report_parser import ParsedReport
from .wmi_store import ManagementStore

logger = logging.getLogger(__name__)


@dataclass
class BatteryRecord:
    computer_name: str
    system_manufacturer: Optional[str] = None
    system_product_name: Optional[str] = None
    design_capacity: int = 0
    full_charge_capacity: int = 0
    cycle_count: int = 0
    active_runtime: str = ZERO_DURATION
    active_runtime_at_design_capacity: str = ZERO_DURATION
    modern_standby: str = ZERO_DURATION
    modern_standby_at_design_capacity: str = ZERO_DURATION

    @classmethod
    def from_report(cls, report: ParsedReport) -> "BatteryRecord":
        """Normalize a parsed report's durations into a persistable record."""
        return cls(
            computer_name=report.computer_name,
            system_manufacturer=report.system_manufacturer,
            system_product_name=report.system_product_name,
            design_capacity=report.design_capacity,
            full_charge_capacity=report.full_charge_capacity,
            cycle_count=report.cycle_count,
            active_runtime=normalize_duration(report.active_runtime),
            active_runtime_at_design_capacity=normalize_duration(
                report.active_runtime_at_design_capacity
            ),
            modern_standby=normalize_duration(report.modern_standby),
            modern_standby_at_design_capacity=normalize_duration(
                report.modern_standby_at_design_capacity
            ),
        )

    def to_store_values(self) -> Dict[str, Any]:
        """Property values keyed by their inventory class names."""
        return {
            "ComputerName": self.computer_name,
            "SystemManufacturer": self.system_manufacturer,
            "SystemProductName": self.system_product_name,
            "DesignCapacity": self.design_capacity,
            "FullChargeCapacity": self.full_charge_capacity,
            "CycleCount": self.cycle_count,
            "ActiveRuntime": self.active_runtime,
            "ActiveRuntimeAtDesignCapacity": self.active_runtime_at_design_capacity,
            "ModernStandby": self.modern_standby,
            "ModernStandbyAtDesignCapacity": self.modern_standby_at_design_capacity,
        }


def upsert_record(
    store: ManagementStore,
    namespace: str,
    class_name: str,
    identity: str,
    fields: Mapping[str, Any],
    key_field: str = "ComputerName",
) -> str:
    """Update the record keyed by ``identity`` or create it.

    Only the supplied fields are written on update; the key is never changed
    (a key entry in ``fields`` is ignored). Returns "created" or "updated".

    Raises:
        ValueError: ``identity`` is empty
        StoreWriteError: the store failed to read or write
    """
    if not identity or not str(identity).strip():
        raise ValueError("Record identity must be a non-empty string")

    values = {k: v for k, v in fields.items() if k != key_field}

    try:
        existing = store.find_records(namespace, class_name, key_field, identity)
        if existing:
            if len(existing) > 1:
                logger.warning(
                    "Found %d records for %s=%s, updating the first",
                    len(existing),
                    key_field,
                    identity,
                )
            store.update_record(namespace, class_name, key_field, identity, values)
            action = "updated"
        else:
            store.create_record(namespace, class_name, {key_field: identity, **values})
            action = "created"
    except Exception as e:
        raise StoreWriteError(
            f"Could not write {class_name} record for {identity}: {e}"
        ) from e

    logger.info("%s record %s=%s", action.capitalize(), key_field, identity)
    return action


__all__ = ["BatteryRecord", "upsert_record"]
