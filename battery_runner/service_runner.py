"""Battery report inventory runner.

Runs the report-to-record pipeline for the local machine and streams stage
markers to stderr while emitting a final JSON result to stdout:

  ensure schema -> run powercfg -> parse XML -> normalize durations
  -> upsert record -> summarize

Any fatal error ends the run with a failure result and a non-zero exit code.
Work already committed is not rolled back: a run that fails after the schema
was provisioned leaves the (empty) class in place, and a failed generator run
leaves the previous record untouched.
"""

import sys, os, ctypes, json, argparse, logging, time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .config import RunnerConfig
from .errors import BatteryRunnerError, GeneratorTimeoutError, SchemaCreationError
from .sentry_config import (
    init_sentry,
    add_breadcrumb,
    capture_run_exception,
    create_run_transaction,
    create_stage_span,
)
from .services.battery_service import build_battery_summary
from .services.powercfg_service import PowercfgReportGenerator
from .services.record_service import BatteryRecord, upsert_record
from .services.report_parser import parse_report
from .services.schema_service import BATTERY_RECORD_FIELDS, ensure_schema, key_field_name
from .services.wmi_store import ManagementStore

logger = logging.getLogger(__name__)

TASK_TYPE = "battery_report_inventory"

TaskResult = Dict[str, Any]
ReportGenerator = Callable[[], str]

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_TIMEOUT = 2

_DEFAULT_LOG_FMT = "%(message)s"


class Stage(str, Enum):
    INIT = "init"
    ENSURE_SCHEMA = "ensure_schema"
    RUN_GENERATOR = "run_generator"
    PARSE_REPORT = "parse_report"
    NORMALIZE_DURATIONS = "normalize_durations"
    UPSERT = "upsert"
    SUMMARIZE = "summarize"
    DONE = "done"


def is_admin() -> bool:
    """Return True if the current process is running with administrator rights."""
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())
    except (AttributeError, OSError):
        return False


def flush_logs():
    """Flush all logging handlers and stdio so markers reach the transcript promptly."""
    for h in logging.getLogger().handlers:
        try:
            h.flush()
        except (OSError, ValueError):
            pass
    for stream in (sys.stderr, sys.stdout):
        try:
            stream.flush()
        except (OSError, ValueError):
            pass


class BatteryReportPipeline:
    """One report-to-record run for the local machine."""

    def __init__(
        self,
        config: RunnerConfig,
        store: Optional[ManagementStore] = None,
        generator: Optional[ReportGenerator] = None,
    ):
        self.config = config
        self._store = store
        self.generator = generator or PowercfgReportGenerator(config)
        self.stage = Stage.INIT
        self.stages_completed: List[str] = []

    @property
    def store(self) -> ManagementStore:
        if self._store is None:
            from .services.wmi_store import WmiStore

            self._store = WmiStore()
        return self._store

    @contextmanager
    def _stage(self, stage: Stage):
        self.stage = stage
        logger.info("STAGE_START:%s", stage.value)
        flush_logs()
        add_breadcrumb(f"Starting stage: {stage.value}", category="stage", level="info")
        with create_stage_span(stage.value) as span:
            try:
                yield span
            except Exception as e:
                logger.error("STAGE_FAIL:%s - %s: %s", stage.value, e.__class__.__name__, e)
                flush_logs()
                if span:
                    span.set_tag("status", "error")
                raise
        self.stages_completed.append(stage.value)
        logger.info("STAGE_OK:%s", stage.value)
        flush_logs()

    def _ensure_schema(self) -> bool:
        try:
            store = self.store
        except Exception as e:
            raise SchemaCreationError(f"Management store unavailable: {e}") from e
        return ensure_schema(
            store, self.config.namespace, self.config.class_name, BATTERY_RECORD_FIELDS
        )

    def run(self) -> TaskResult:
        started = time.time()
        summary: Dict[str, Any] = {}
        status = "success"

        try:
            with create_run_transaction(TASK_TYPE):
                with self._stage(Stage.ENSURE_SCHEMA):
                    summary["schema_created"] = self._ensure_schema()

                with self._stage(Stage.RUN_GENERATOR):
                    xml_path = self.generator()
                    summary["report_path"] = xml_path

                with self._stage(Stage.PARSE_REPORT):
                    report = parse_report(xml_path, self.config.battery_index)
                    summary["report_shape"] = report.shape
                    logger.info(
                        "Parsed %s report for %s (battery %s %s)",
                        report.shape,
                        report.computer_name,
                        report.battery_manufacturer or "unknown",
                        report.battery_id or "",
                    )

                with self._stage(Stage.NORMALIZE_DURATIONS):
                    record = BatteryRecord.from_report(report)

                with self._stage(Stage.UPSERT):
                    values = record.to_store_values()
                    summary["action"] = upsert_record(
                        self.store,
                        self.config.namespace,
                        self.config.class_name,
                        record.computer_name,
                        values,
                        key_field=key_field_name(BATTERY_RECORD_FIELDS),
                    )
                    summary["record"] = values

                with self._stage(Stage.SUMMARIZE):
                    summary.update(build_battery_summary(record))
                    for name, value in values.items():
                        logger.info("  %s = %s", name, value)
                    logger.info(summary["human_readable"])

        except BatteryRunnerError as e:
            status = "timeout" if isinstance(e, GeneratorTimeoutError) else "failure"
            summary["error"] = str(e)
            summary["error_type"] = e.__class__.__name__
            summary["failed_stage"] = self.stage.value
            logger.error("Battery report run failed during %s: %s", self.stage.value, e)
            if e.__cause__ is not None:
                logger.error("Caused by: %r", e.__cause__)
            capture_run_exception(
                e,
                self.stage.value,
                extra_context={"run": {"stages_completed": self.stages_completed}},
            )
        finally:
            if not self.config.keep_reports:
                cleanup = getattr(self.generator, "cleanup", None)
                if callable(cleanup):
                    cleanup()

        self.stage = Stage.DONE
        summary["stage"] = self.stage.value
        summary["stages_completed"] = list(self.stages_completed)
        summary["duration_seconds"] = round(time.time() - started, 2)
        logger.info("RUN_DONE:%s", status)
        flush_logs()

        return {"task_type": TASK_TYPE, "status": status, "summary": summary}


def exit_code_for(result: TaskResult) -> int:
    status = result.get("status")
    if status == "success":
        return EXIT_SUCCESS
    if status == "timeout":
        return EXIT_TIMEOUT
    return EXIT_FAILURE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Collect powercfg battery telemetry into the WMI inventory class."
    )
    parser.add_argument("--output-dir", dest="output_dir", default=None,
                        help="Directory for the generated battery reports.")
    parser.add_argument("--namespace", dest="namespace", default=None,
                        help="WMI namespace holding the inventory class.")
    parser.add_argument("--class", dest="class_name", default=None,
                        help="Name of the inventory class.")
    parser.add_argument("--timeout", dest="generator_timeout", type=float, default=None,
                        help="Seconds to wait for powercfg before giving up.")
    parser.add_argument("--battery-index", dest="battery_index", type=int, default=None,
                        help="Battery to record on machines with more than one.")
    parser.add_argument("--keep-reports", dest="keep_reports",
                        action=argparse.BooleanOptionalAction, default=None,
                        help="Keep the generated HTML/XML reports after the run.")
    parser.add_argument("--sentry-dsn", dest="sentry_dsn", default=None,
                        help="Sentry DSN for error tracking (disabled when empty).")
    parser.add_argument("--log-file", dest="log_file", default=None,
                        help="Optional path to write a transcript (in addition to stderr).")
    parser.add_argument("--output-file", "-o", dest="output_file", default=None,
                        help="Optional path to write the final JSON result.")
    return parser


def _configure_logging(log_file: Optional[str]) -> None:
    logging.basicConfig(
        level=logging.INFO, stream=sys.stderr, format=_DEFAULT_LOG_FMT, force=True
    )
    if not log_file:
        return
    try:
        dirpath = os.path.dirname(log_file)
        if dirpath:
            os.makedirs(dirpath, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logging.getLogger().addHandler(fh)
        logging.info("Log file initialized: %s", log_file)
    except OSError as e:
        logging.error("Failed to initialize log file '%s': %s", log_file, e)


def main(
    argv: Optional[List[str]] = None,
    *,
    store: Optional[ManagementStore] = None,
    generator: Optional[ReportGenerator] = None,
) -> int:
    """Entrypoint: run the pipeline once and emit the JSON result."""
    args = build_parser().parse_args(argv)
    _configure_logging(args.log_file)

    config = RunnerConfig.from_env().with_overrides(
        output_dir=args.output_dir,
        namespace=args.namespace,
        class_name=args.class_name,
        generator_timeout=args.generator_timeout,
        battery_index=args.battery_index,
        keep_reports=args.keep_reports,
        sentry_dsn=args.sentry_dsn,
    )

    if os.name == "nt" and not is_admin():
        logging.warning(
            "Not running elevated; creating the inventory namespace may be refused."
        )

    if init_sentry(config.sentry_dsn, environment=config.sentry_environment):
        add_breadcrumb("Battery report runner starting", category="lifecycle", level="info")

    result = BatteryReportPipeline(config, store=store, generator=generator).run()

    report_json = json.dumps(result, indent=2, default=str)
    print(report_json)
    flush_logs()

    if args.output_file:
        try:
            dirpath = os.path.dirname(args.output_file)
            if dirpath:
                os.makedirs(dirpath, exist_ok=True)
            with open(args.output_file, "w", encoding="utf-8") as out_f:
                out_f.write(report_json)
            logging.info("Final result written to '%s'", args.output_file)
        except OSError as e:
            logging.error("Failed to write final result to '%s': %s", args.output_file, e)
        flush_logs()

    return exit_code_for(result)


if __name__ == "__main__":
    sys.exit(main())
