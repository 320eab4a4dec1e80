"""Runner configuration.

Defaults match the values the inventory deployment has always used. They can
be overridden through environment variables (``BATTERY_RUNNER_*``, optionally
loaded from a ``.env`` file next to the working directory) and then through
command-line flags.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "BATTERY_RUNNER_"


def _default_output_dir() -> str:
    return os.path.join(tempfile.gettempdir(), "BatteryReport")


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class RunnerConfig:
    output_dir: str = field(default_factory=_default_output_dir)
    namespace: str = "root\\BatteryReport"
    class_name: str = "BatteryReport"
    generator_timeout: float = 120.0
    battery_index: int = 0
    keep_reports: bool = True
    powercfg_path: str = "powercfg"
    sentry_dsn: Optional[str] = None
    sentry_environment: Optional[str] = None

    @property
    def html_report_path(self) -> str:
        return os.path.join(self.output_dir, "battery-report.html")

    @property
    def xml_report_path(self) -> str:
        return os.path.join(self.output_dir, "battery-report.xml")

    def with_overrides(self, **overrides: Any) -> "RunnerConfig":
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, *, dotenv_path: Optional[str] = None
    ) -> "RunnerConfig":
        """Build a config from ``BATTERY_RUNNER_*`` variables.

        When ``environ`` is not given, ``os.environ`` is used after loading a
        ``.env`` file (existing variables win).
        """
        if environ is None:
            path = dotenv_path or find_dotenv(usecwd=True)
            if path:
                load_dotenv(path, override=False)
            environ = os.environ

        converters = {
            "output_dir": str,
            "namespace": str,
            "class_name": str,
            "generator_timeout": float,
            "battery_index": int,
            "keep_reports": _as_bool,
            "powercfg_path": str,
            "sentry_dsn": str,
            "sentry_environment": str,
        }
        values: Dict[str, Any] = {}
        for name, convert in converters.items():
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is None or raw.strip() == "":
                continue
            try:
                values[name] = convert(raw.strip())
            except ValueError:
                logger.warning("Ignoring invalid %s%s=%r", ENV_PREFIX, name.upper(), raw)
        return cls(**values)


__all__ = ["RunnerConfig", "ENV_PREFIX"]
