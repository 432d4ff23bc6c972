"""Human and machine readable run reporting."""

from defaulter.reports.summary import (
    LogSummaryReporter,
    build_json_summary,
    format_text_summary,
    log_run_summary,
)

__all__ = [
    "LogSummaryReporter",
    "build_json_summary",
    "format_text_summary",
    "log_run_summary",
]
