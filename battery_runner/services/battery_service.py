"""Battery health summary.

Turns a persisted battery record into the run summary shown to technicians:
capacity percentage, wear level, a health verdict and a human-readable block.

Return dict structure:
  {
    capacity_percent: float | None,
    wear_level_percent: float | None (100 - capacity_percent),
    health_verdict: str,
    active_runtime_seconds: int,
    human_readable: str
  }
"""

from __future__ import annotations

from typing import Dict, Any, Optional

from .durations import duration_to_seconds
from .record_service import BatteryRecord


def capacity_percent(record: BatteryRecord) -> Optional[float]:
    """Full-charge capacity as a percentage of design capacity."""
    if record.design_capacity <= 0:
        return None
    return round(record.full_charge_capacity / record.design_capacity * 100.0, 1)


def health_verdict(percent: Optional[float]) -> str:
    if percent is None:
        return "Unknown"
    if percent >= 90:
        return "Excellent"
    elif percent >= 80:
        return "Good"
    elif percent >= 70:
        return "Fair"
    elif percent >= 60:
        return "Poor"
    return "Critical"


def build_battery_summary(record: BatteryRecord) -> Dict[str, Any]:
    capacity = capacity_percent(record)
    wear_level = round(100.0 - capacity, 1) if capacity is not None else None
    verdict = health_verdict(capacity)

    lines = [f"Computer: {record.computer_name}"]
    if record.system_manufacturer or record.system_product_name:
        system_name = f"{record.system_manufacturer or ''} {record.system_product_name or ''}".strip()
        lines.append(f"System: {system_name}")
    lines.append(
        f"Capacity: {record.full_charge_capacity:,} / {record.design_capacity:,} mWh (design)"
    )
    if capacity is not None:
        lines.append(f"Capacity: {capacity:.1f}%")
        lines.append(f"Wear Level: {wear_level:.1f}%")
    lines.append(f"Cycle Count: {record.cycle_count:,}")
    lines.append(
        f"Active Runtime: {record.active_runtime} "
        f"(at design capacity: {record.active_runtime_at_design_capacity})"
    )
    lines.append(
        f"Modern Standby: {record.modern_standby} "
        f"(at design capacity: {record.modern_standby_at_design_capacity})"
    )
    lines.append(f"Health: {verdict}")

    return {
        "capacity_percent": capacity,
        "wear_level_percent": wear_level,
        "health_verdict": verdict,
        "active_runtime_seconds": duration_to_seconds(record.active_runtime),
        "human_readable": "\n".join(lines),
    }


__all__ = ["build_battery_summary", "capacity_percent", "health_verdict"]
