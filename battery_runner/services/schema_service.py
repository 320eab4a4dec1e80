"""Schema provisioning for the battery inventory class.

The class is described by a declarative field table and created on demand:

  ensure_schema(store, "root\\BatteryReport", "BatteryReport")

creates any missing namespace along the path, then the class with one string
key (ComputerName) and the typed battery fields. Calling it again is a no-op.
Property names are part of the reporting contract; the inventory SQL views
select them by name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

from ..errors import SchemaCreationError
from ..sentry_config import add_breadcrumb
from .wmi_store import CIM_TYPES, ManagementStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    cim_type: str
    nullable: bool = False
    is_key: bool = False


BATTERY_RECORD_FIELDS = (
    FieldSpec("ComputerName", "string", is_key=True),
    FieldSpec("SystemManufacturer", "string", nullable=True),
    FieldSpec("SystemProductName", "string", nullable=True),
    FieldSpec("DesignCapacity", "uint32"),
    FieldSpec("FullChargeCapacity", "uint32"),
    FieldSpec("CycleCount", "uint32"),
    FieldSpec("ActiveRuntime", "string"),
    FieldSpec("ActiveRuntimeAtDesignCapacity", "string"),
    FieldSpec("ModernStandby", "string"),
    FieldSpec("ModernStandbyAtDesignCapacity", "string"),
)


def validate_field_spec(fields: Sequence[FieldSpec]) -> None:
    """Reject tables without exactly one key, with duplicates or unknown types."""
    names = [f.name for f in fields]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate field names in schema: {', '.join(duplicates)}")
    keys = [f for f in fields if f.is_key]
    if len(keys) != 1:
        raise ValueError(f"Schema needs exactly one key field, found {len(keys)}")
    if keys[0].nullable:
        raise ValueError(f"Key field {keys[0].name} cannot be nullable")
    for f in fields:
        if f.cim_type not in CIM_TYPES:
            raise ValueError(f"Unsupported CIM type {f.cim_type!r} for {f.name}")


def key_field_name(fields: Sequence[FieldSpec]) -> str:
    return next(f.name for f in fields if f.is_key)


def _namespace_chain(namespace: str) -> List[str]:
    """'root\\a\\b' -> ['root', 'root\\a', 'root\\a\\b']"""
    parts = [p for p in namespace.replace("/", "\\").split("\\") if p]
    return ["\\".join(parts[: i + 1]) for i in range(len(parts))]


def ensure_schema(
    store: ManagementStore,
    namespace: str,
    class_name: str,
    fields: Sequence[FieldSpec] = BATTERY_RECORD_FIELDS,
) -> bool:
    """Make sure ``namespace`` and ``class_name`` exist.

    Returns True if anything was created, False if everything already existed.

    Raises:
        ValueError: the field table itself is invalid
        SchemaCreationError: the store refused a probe or a creation
    """
    validate_field_spec(fields)
    created = False

    try:
        for ns in _namespace_chain(namespace):
            if store.namespace_exists(ns):
                continue
            logger.info("Namespace %s not found, creating it", ns)
            store.create_namespace(ns)
            created = True

        existing = store.schema_fields(namespace, class_name)
        if existing is None:
            logger.info("Class %s not found in %s, creating it", class_name, namespace)
            store.create_schema(namespace, class_name, list(fields))
            created = True
        else:
            missing = [f.name for f in fields if f.name not in existing]
            if missing:
                logger.warning(
                    "Class %s exists but lacks fields: %s", class_name, ", ".join(missing)
                )
            else:
                logger.info("Class %s already present in %s", class_name, namespace)
    except Exception as e:
        raise SchemaCreationError(
            f"Could not provision {namespace}:{class_name}: {e}"
        ) from e

    if created:
        add_breadcrumb(
            "Provisioned inventory schema",
            category="schema",
            level="info",
            namespace=namespace,
            class_name=class_name,
        )
    return created


__all__ = [
    "FieldSpec",
    "BATTERY_RECORD_FIELDS",
    "validate_field_spec",
    "key_field_name",
    "ensure_schema",
]
