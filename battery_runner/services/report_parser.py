"""Parser for the structured (XML) battery report.

``powercfg /batteryreport /xml`` emits a document shaped roughly like:

  <BatteryReport xmlns="http://schemas.microsoft.com/battery/2012">
    <SystemInformation>
      <ComputerName>HOST-01</ComputerName>
      <SystemManufacturer>LENOVO</SystemManufacturer>
      <SystemProductName>20XW</SystemProductName>
    </SystemInformation>
    <Batteries>
      <Battery>
        <Id>5B10W13930</Id>
        <DesignCapacity>50000</DesignCapacity>
        <FullChargeCapacity>45000</FullChargeCapacity>
        <CycleCount>120</CycleCount>
      </Battery>
    </Batteries>
    <RuntimeEstimates>
      <FullChargeCapacity>
        <ActiveRuntime>PT5H30M</ActiveRuntime>
        <ModernStandby>PT310H</ModernStandby>
      </FullChargeCapacity>
      <DesignCapacity>...</DesignCapacity>
    </RuntimeEstimates>
  </BatteryReport>

Older generator builds name the standby estimate ``ConnectedStandby``. Each
layout is a tagged shape (``ReportShapeV1`` / ``ReportShapeV2``) picked by
``detect_shape`` and read by its own ``extract``.

Only the computer name is required. Everything else degrades to a default.
"""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional, Union

from ..errors import MissingRequiredFieldError, ReportParseError

logger = logging.getLogger(__name__)

UINT32_MAX = 2**32 - 1


@dataclass
class ParsedReport:
    """Raw values pulled from the report, before duration normalization."""

    computer_name: str
    system_manufacturer: Optional[str] = None
    system_product_name: Optional[str] = None
    design_capacity: int = 0
    full_charge_capacity: int = 0
    cycle_count: int = 0
    active_runtime: Optional[str] = None
    active_runtime_at_design_capacity: Optional[str] = None
    modern_standby: Optional[str] = None
    modern_standby_at_design_capacity: Optional[str] = None
    # Informational only, not persisted
    battery_id: Optional[str] = None
    battery_manufacturer: Optional[str] = None
    battery_chemistry: Optional[str] = None
    shape: str = ""


def _text(node: Optional[ET.Element], path: str) -> Optional[str]:
    if node is None:
        return None
    found = node.find(path)
    if found is None or found.text is None:
        return None
    value = found.text.strip()
    return value or None


def _uint32(value: Optional[str], field: str) -> int:
    """Parse an unsigned 32-bit integer, falling back to 0."""
    if value is None:
        return 0
    try:
        number = int(value.replace(",", "").strip())
    except ValueError:
        logger.warning("Field %s is not an integer (%r), using 0", field, value)
        return 0
    if number < 0 or number > UINT32_MAX:
        logger.warning("Field %s out of uint32 range (%s), using 0", field, number)
        return 0
    return number


class ReportShapeV2:
    """Current layout: runtime estimates carry ``ModernStandby``."""

    name = "v2"
    standby_tag = "ModernStandby"

    @classmethod
    def matches(cls, root: ET.Element) -> bool:
        return root.find(f"RuntimeEstimates/*/{cls.standby_tag}") is not None

    @classmethod
    def extract(cls, root: ET.Element, battery_index: int = 0) -> ParsedReport:
        system = root.find("SystemInformation")
        computer_name = _text(system, "ComputerName")
        if not computer_name:
            raise MissingRequiredFieldError("SystemInformation/ComputerName")

        batteries = root.findall("Batteries/Battery")
        battery = None
        if batteries:
            if 0 <= battery_index < len(batteries):
                battery = batteries[battery_index]
            else:
                logger.warning(
                    "Battery index %d not present (%d batteries), using first",
                    battery_index,
                    len(batteries),
                )
                battery = batteries[0]
        else:
            logger.warning("No <Battery> entries in report for %s", computer_name)

        full = root.find("RuntimeEstimates/FullChargeCapacity")
        design = root.find("RuntimeEstimates/DesignCapacity")

        return ParsedReport(
            computer_name=computer_name,
            system_manufacturer=_text(system, "SystemManufacturer"),
            system_product_name=_text(system, "SystemProductName"),
            design_capacity=_uint32(_text(battery, "DesignCapacity"), "DesignCapacity"),
            full_charge_capacity=_uint32(
                _text(battery, "FullChargeCapacity"), "FullChargeCapacity"
            ),
            cycle_count=_uint32(_text(battery, "CycleCount"), "CycleCount"),
            active_runtime=_text(full, "ActiveRuntime"),
            active_runtime_at_design_capacity=_text(design, "ActiveRuntime"),
            modern_standby=_text(full, cls.standby_tag),
            modern_standby_at_design_capacity=_text(design, cls.standby_tag),
            battery_id=_text(battery, "Id"),
            battery_manufacturer=_text(battery, "Manufacturer"),
            battery_chemistry=_text(battery, "Chemistry"),
            shape=cls.name,
        )


class ReportShapeV1(ReportShapeV2):
    """Older layout: runtime estimates carry ``ConnectedStandby``."""

    name = "v1"
    standby_tag = "ConnectedStandby"


_SHAPES = (ReportShapeV2, ReportShapeV1)


def detect_shape(root: ET.Element):
    """Return the shape class describing ``root``; unknown layouts read as V2."""
    for shape in _SHAPES:
        if shape.matches(root):
            return shape
    return ReportShapeV2


def _strip_namespaces(root: ET.Element) -> ET.Element:
    for el in root.iter():
        if isinstance(el.tag, str) and "}" in el.tag:
            el.tag = el.tag.split("}", 1)[1]
    return root


def parse_report_tree(root: ET.Element, battery_index: int = 0) -> ParsedReport:
    """Extract a ``ParsedReport`` from an already parsed document."""
    root = _strip_namespaces(root)
    shape = detect_shape(root)
    logger.debug("Battery report shape detected: %s", shape.name)
    return shape.extract(root, battery_index)


def parse_report(
    source: Union[str, bytes, "os.PathLike[str]"], battery_index: int = 0
) -> ParsedReport:
    """Parse a report from a file path, XML text or XML bytes."""
    try:
        if isinstance(source, bytes):
            root = ET.fromstring(source)
        elif isinstance(source, str) and source.lstrip().startswith("<"):
            root = ET.fromstring(source)
        else:
            root = ET.parse(os.fspath(source)).getroot()
    except ET.ParseError as e:
        raise ReportParseError(f"Battery report is not valid XML: {e}") from e
    except OSError as e:
        raise ReportParseError(f"Battery report could not be read: {e}") from e
    return parse_report_tree(root, battery_index)


__all__ = [
    "ParsedReport",
    "ReportShapeV1",
    "ReportShapeV2",
    "detect_shape",
    "parse_report",
    "parse_report_tree",
]
