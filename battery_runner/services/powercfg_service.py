"""powercfg battery report generator.

Runs the native Windows report generator twice: once for the human-readable
HTML report (kept for technicians) and once for the XML report consumed by
the parser.

  powercfg /batteryreport /output <dir>\\battery-report.html
  powercfg /batteryreport /xml /output <dir>\\battery-report.xml

A non-zero exit code, a missing output file or an expired timeout is raised
as ``GeneratorFailedError`` (``GeneratorTimeoutError`` for the latter).
"""

from __future__ import annotations

import logging
import os
import subprocess
from typing import List

from ..config import RunnerConfig
from ..errors import GeneratorFailedError, GeneratorTimeoutError
from ..sentry_config import add_breadcrumb
from ..subprocess_utils import run_with_timeout

logger = logging.getLogger(__name__)

MAX_STDERR_EXCERPT = 500


def _excerpt(text) -> str:
    if not text:
        return ""
    text = str(text).strip()
    return text[:MAX_STDERR_EXCERPT] + "..." if len(text) > MAX_STDERR_EXCERPT else text


class PowercfgReportGenerator:
    """Produce the battery reports for the local machine."""

    def __init__(self, config: RunnerConfig):
        self.config = config

    def build_command(self, output_path: str, *, xml: bool) -> List[str]:
        cmd = [self.config.powercfg_path, "/batteryreport"]
        if xml:
            cmd.append("/xml")
        cmd.extend(["/output", output_path])
        return cmd

    def _run(self, output_path: str, *, xml: bool) -> str:
        command = self.build_command(output_path, xml=xml)

        # Remove stale output so an old file is never mistaken for fresh output
        try:
            if os.path.exists(output_path):
                os.remove(output_path)
        except OSError as e:
            raise GeneratorFailedError(
                f"Could not remove previous report {output_path}: {e}", command=command
            ) from e

        logger.info("Running: %s", " ".join(command))
        add_breadcrumb(
            "Running powercfg battery report",
            category="subprocess",
            level="info",
            command=" ".join(command),
        )

        try:
            result = run_with_timeout(command, timeout=self.config.generator_timeout)
        except subprocess.TimeoutExpired as e:
            raise GeneratorTimeoutError(
                f"powercfg did not finish within {self.config.generator_timeout:.0f}s",
                command=command,
                stderr=_excerpt(e.stderr),
            ) from e
        except OSError as e:
            raise GeneratorFailedError(
                f"powercfg could not be started: {e}", command=command
            ) from e

        if result.returncode != 0:
            stderr = _excerpt(result.stderr) or _excerpt(result.stdout)
            raise GeneratorFailedError(
                f"powercfg exited with code {result.returncode}: {stderr or 'no output'}",
                command=command,
                exit_code=result.returncode,
                stderr=stderr,
            )

        if not os.path.isfile(output_path) or os.path.getsize(output_path) == 0:
            raise GeneratorFailedError(
                f"powercfg reported success but produced no report at {output_path}",
                command=command,
                exit_code=result.returncode,
                stderr=_excerpt(result.stderr),
            )
        return output_path

    def generate(self) -> str:
        """Generate both reports and return the path of the XML report."""
        try:
            os.makedirs(self.config.output_dir, exist_ok=True)
        except OSError as e:
            raise GeneratorFailedError(
                f"Could not create report directory {self.config.output_dir}: {e}"
            ) from e
        html_path = self._run(self.config.html_report_path, xml=False)
        logger.info("Human-readable battery report written to %s", html_path)
        xml_path = self._run(self.config.xml_report_path, xml=True)
        logger.info("Structured battery report written to %s", xml_path)
        return xml_path

    def cleanup(self) -> None:
        for path in (self.config.html_report_path, self.config.xml_report_path):
            try:
                if os.path.exists(path):
                    os.remove(path)
            except OSError as e:
                logger.warning("Could not remove battery report %s: %s", path, e)

    __call__ = generate


__all__ = ["PowercfgReportGenerator"]
