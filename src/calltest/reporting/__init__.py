"""Run report formatting."""

from calltest.reporting.formatting import format_run_summary, format_table, truncate

__all__ = ["format_run_summary", "format_table", "truncate"]
