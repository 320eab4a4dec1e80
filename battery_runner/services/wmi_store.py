"""Management data store backed by WMI.

The pipeline talks to the store through a narrow contract: create a
namespace, create a class, query instances by key, create an instance and
update an instance, plus two existence probes used by schema provisioning.
``ManagementStore`` documents that contract; ``WmiStore`` implements it with
``wmi`` (connections and WQL queries) and pywin32 (class and instance
writes through SWbemServices).

The Windows-only libraries are imported when a ``WmiStore`` is constructed so
the rest of the package stays importable on other platforms.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

# wbemCimtypeEnum
CIM_TYPES = {
    "sint32": 3,
    "boolean": 11,
    "string": 8,
    "uint32": 19,
    "sint64": 20,
    "uint64": 21,
    "datetime": 101,
}

WBEM_E_NOT_FOUND = 0x80041002
WBEM_E_INVALID_NAMESPACE = 0x8004100E
WBEM_E_INVALID_CLASS = 0x80041010


class ManagementStore:
    """Interface consumed by schema provisioning and record upserts."""

    def namespace_exists(self, namespace: str) -> bool:
        raise NotImplementedError

    def create_namespace(self, namespace: str) -> None:
        raise NotImplementedError

    def schema_fields(self, namespace: str, class_name: str) -> Optional[List[str]]:
        """Return the class's property names, or None if the class is absent."""
        raise NotImplementedError

    def create_schema(self, namespace: str, class_name: str, fields: Sequence[Any]) -> None:
        raise NotImplementedError

    def find_records(
        self, namespace: str, class_name: str, key_field: str, key: str
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def create_record(self, namespace: str, class_name: str, values: Dict[str, Any]) -> None:
        raise NotImplementedError

    def update_record(
        self,
        namespace: str,
        class_name: str,
        key_field: str,
        key: str,
        values: Dict[str, Any],
    ) -> None:
        raise NotImplementedError


def _wql_quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _path_quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _com_scode(error) -> int:
    """Extract the WBEM status code from a pywintypes.com_error."""
    excepinfo = getattr(error, "excepinfo", None)
    if excepinfo and len(excepinfo) > 5 and excepinfo[5]:
        return excepinfo[5] & 0xFFFFFFFF
    return (getattr(error, "hresult", 0) or 0) & 0xFFFFFFFF


class WmiStore(ManagementStore):
    """``ManagementStore`` over the local (or a remote) WMI service."""

    def __init__(self, computer: str = "."):
        import pythoncom
        import pywintypes
        import win32com.client
        import wmi

        self.computer = computer
        self._wmi = wmi
        self._win32com_client = win32com.client
        self._com_error = pywintypes.com_error
        # COM must be initialized on the thread that talks to WMI
        pythoncom.CoInitialize()

    def _services(self, namespace: str):
        moniker = f"winmgmts:{{impersonationLevel=impersonate}}!\\\\{self.computer}\\{namespace}"
        return self._win32com_client.GetObject(moniker)

    def namespace_exists(self, namespace: str) -> bool:
        try:
            self._wmi.WMI(computer=self.computer, namespace=namespace)
        except self._wmi.x_wmi as e:
            logger.debug("Namespace %s not reachable: %s", namespace, e)
            return False
        return True

    def create_namespace(self, namespace: str) -> None:
        parent, _, leaf = namespace.rpartition("\\")
        if not parent or not leaf:
            raise ValueError(f"Cannot create top-level namespace {namespace!r}")
        services = self._services(parent)
        instance = services.Get("__Namespace").SpawnInstance_()
        instance.Properties_.Item("Name").Value = leaf
        instance.Put_()
        logger.info("Created WMI namespace %s", namespace)

    def schema_fields(self, namespace: str, class_name: str) -> Optional[List[str]]:
        services = self._services(namespace)
        try:
            wmi_class = services.Get(class_name)
        except self._com_error as e:
            if _com_scode(e) in (WBEM_E_NOT_FOUND, WBEM_E_INVALID_CLASS):
                return None
            raise
        return [prop.Name for prop in wmi_class.Properties_]

    def create_schema(self, namespace: str, class_name: str, fields: Sequence[Any]) -> None:
        services = self._services(namespace)
        wmi_class = services.Get()
        wmi_class.Path_.Class = class_name
        for field in fields:
            prop = wmi_class.Properties_.Add(field.name, CIM_TYPES[field.cim_type])
            if field.is_key:
                prop.Qualifiers_.Add("key", True)
        wmi_class.Put_()
        logger.info("Created WMI class %s:%s", namespace, class_name)

    def find_records(
        self, namespace: str, class_name: str, key_field: str, key: str
    ) -> List[Dict[str, Any]]:
        connection = self._wmi.WMI(computer=self.computer, namespace=namespace)
        wql = f"SELECT * FROM {class_name} WHERE {key_field} = '{_wql_quote(key)}'"
        rows = connection.query(wql)
        return [{name: getattr(row, name) for name in row.properties} for row in rows]

    def _put(self, instance, values: Dict[str, Any]) -> None:
        for name, value in values.items():
            instance.Properties_.Item(name).Value = value
        instance.Put_()

    def create_record(self, namespace: str, class_name: str, values: Dict[str, Any]) -> None:
        services = self._services(namespace)
        instance = services.Get(class_name).SpawnInstance_()
        self._put(instance, values)

    def update_record(
        self,
        namespace: str,
        class_name: str,
        key_field: str,
        key: str,
        values: Dict[str, Any],
    ) -> None:
        services = self._services(namespace)
        instance = services.Get(f'{class_name}.{key_field}="{_path_quote(key)}"')
        self._put(instance, values)


__all__ = ["CIM_TYPES", "ManagementStore", "WmiStore"]
