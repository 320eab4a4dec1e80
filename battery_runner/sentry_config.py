"""Sentry configuration and utilities for error tracking.

All Sentry-related logic for the battery report runner lives here. Tracking is
opt-in: nothing is sent unless a DSN is configured (``BATTERY_RUNNER_SENTRY_DSN``
or ``--sentry-dsn``). Every helper is a silent no-op until ``init_sentry`` has
succeeded, so the pipeline can call them unconditionally.
"""

import os
import sys
import platform
import logging
from contextlib import contextmanager
from typing import Dict, Any, Optional

import psutil
import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

# Global flag to track if Sentry has been initialized
_sentry_initialized = False


def detect_environment() -> str:
    """Return 'development' or 'production'.

    BATTERY_RUNNER_ENV wins; a frozen executable counts as production;
    anything else is development.
    """
    env_var = os.environ.get("BATTERY_RUNNER_ENV", "").lower()
    if env_var in ("development", "dev"):
        return "development"
    elif env_var in ("production", "prod"):
        return "production"

    if getattr(sys, "frozen", False):
        return "production"
    return "development"


def get_system_context() -> Dict[str, Any]:
    """Collect a small snapshot of the machine for error reports."""
    context: Dict[str, Any] = {
        "os": {
            "name": platform.system(),
            "version": platform.version(),
            "release": platform.release(),
            "architecture": platform.machine(),
        },
        "python": {
            "version": platform.python_version(),
            "implementation": platform.python_implementation(),
        },
        "hostname": platform.node(),
    }

    try:
        mem = psutil.virtual_memory()
        context["memory"] = {
            "total_gb": round(mem.total / (1024**3), 2),
            "percent_used": mem.percent,
        }
    except Exception as e:
        logger.debug(f"Failed to collect memory info: {e}")

    try:
        battery = psutil.sensors_battery()
        if battery is not None:
            context["battery"] = {
                "percent": battery.percent,
                "power_plugged": battery.power_plugged,
            }
    except Exception as e:
        logger.debug(f"Failed to collect battery sensor info: {e}")

    return context


def init_sentry(
    dsn: Optional[str],
    environment: Optional[str] = None,
    traces_sample_rate: float = 0.0,
    send_system_info: bool = True,
) -> bool:
    """Initialize Sentry. Safe to call multiple times.

    Returns:
        bool: True if Sentry is active after the call, False otherwise
    """
    global _sentry_initialized

    if not dsn:
        logger.debug("Sentry DSN not configured, error tracking disabled")
        return False

    if _sentry_initialized:
        logger.debug("Sentry already initialized, skipping")
        return True

    environment = environment or detect_environment()
    system_context = get_system_context() if send_system_info else {}

    def before_send(event, hint):
        """Attach the machine snapshot to every event."""
        if system_context:
            event.setdefault("contexts", {})["system_info"] = system_context
            event.setdefault("tags", {})["os_name"] = system_context["os"]["name"]
        return event

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
            send_default_pii=False,
            before_send=before_send,
            integrations=[
                LoggingIntegration(
                    level=logging.INFO,  # breadcrumbs only
                    event_level=None,
                ),
            ],
            release=f"battery-report-runner@{os.environ.get('BATTERY_RUNNER_VERSION', 'dev')}",
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False

    _sentry_initialized = True
    logger.info(f"Sentry initialized in {environment} environment")
    return True


def capture_run_exception(
    exception: Exception,
    stage: str,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """Capture a fatal pipeline error, fingerprinted by stage and error type."""
    if not _sentry_initialized:
        return None

    try:
        with sentry_sdk.new_scope() as scope:
            scope.fingerprint = ["battery_report_inventory", stage, exception.__class__.__name__]
            scope.set_tag("stage", stage)
            scope.set_tag("error_type", exception.__class__.__name__)
            if extra_context:
                for key, value in extra_context.items():
                    scope.set_context(key, value)
            return sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error(f"Failed to capture run exception: {e}")
        return None


@contextmanager
def create_stage_span(stage: str):
    """Wrap one pipeline stage in a Sentry span (yields None when disabled)."""
    if not _sentry_initialized:
        yield None
        return

    with sentry_sdk.start_span(op="stage", name=stage) as span:
        yield span


@contextmanager
def create_run_transaction(name: str = "battery_report_inventory"):
    """Wrap a whole pipeline run in a Sentry transaction (None when disabled)."""
    if not _sentry_initialized:
        yield None
        return

    with sentry_sdk.start_transaction(op="run", name=name) as transaction:
        yield transaction


def add_breadcrumb(message: str, category: str = "info", level: str = "info", **data):
    """Add a breadcrumb to the current Sentry scope."""
    if not _sentry_initialized:
        return

    try:
        sentry_sdk.add_breadcrumb(category=category, message=message, level=level, data=data)
    except Exception as e:
        logger.debug(f"Failed to add breadcrumb: {e}")
