"""
Errors raised by the species proportion pipeline.

Every error aborts the run. Each one records the stage that failed and,
where known, the table and column involved.
"""
from typing import Optional


class ProportionPipelineError(Exception):
    """Base class for pipeline failures."""

    stage = "pipeline"

    def __init__(self, message: str, table: Optional[str] = None, column: Optional[str] = None):
        self.table = table
        self.column = column
        self.detail = message
        super().__init__(self._format(message))

    def _format(self, message: str) -> str:
        where = []
        if self.table is not None:
            where.append(f"table '{self.table}'")
        if self.column is not None:
            where.append(f"column '{self.column}'")
        location = f" ({', '.join(where)})" if where else ""
        return f"[{self.stage}]{location} {message}"


class DataLoadError(ProportionPipelineError):
    """Input file missing, unreadable or malformed."""

    stage = "data loading"


class SchemaMismatchError(ProportionPipelineError):
    """Feature columns absent from a table."""

    stage = "feature selection"


class DegenerateCalibrationError(ProportionPipelineError):
    """Calibration slope too close to zero to be inverted."""

    stage = "calibration"


class UndefinedMetricError(ProportionPipelineError):
    """Metric denominator is zero."""

    stage = "evaluation"
