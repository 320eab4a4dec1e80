"""Exception taxonomy for the battery report runner.

Every error here is fatal to a single pipeline run. The pipeline catches them
at its boundary, logs the cause and turns them into a failure result; nothing
is retried and nothing already committed to the store is rolled back.
"""

from typing import Optional


class BatteryRunnerError(Exception):
    """Base class for all runner failures."""


class GeneratorFailedError(BatteryRunnerError):
    """The report generator did not produce the expected output."""

    def __init__(
        self,
        message: str,
        *,
        command: Optional[list] = None,
        exit_code: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class GeneratorTimeoutError(GeneratorFailedError):
    """The report generator exceeded its time budget and was killed."""


class ParseError(BatteryRunnerError):
    """The structured report could not be turned into a record."""


class ReportParseError(ParseError):
    """The structured report is not well-formed XML."""


class MissingRequiredFieldError(ParseError):
    """A field needed to key the record is absent from the report."""

    def __init__(self, field: str):
        super().__init__(f"Required field missing from battery report: {field}")
        self.field = field


class SchemaCreationError(BatteryRunnerError):
    """The management store refused to create the namespace or class."""


class StoreWriteError(BatteryRunnerError):
    """The management store refused to read or write a record."""


__all__ = [
    "BatteryRunnerError",
    "GeneratorFailedError",
    "GeneratorTimeoutError",
    "ParseError",
    "ReportParseError",
    "MissingRequiredFieldError",
    "SchemaCreationError",
    "StoreWriteError",
]
