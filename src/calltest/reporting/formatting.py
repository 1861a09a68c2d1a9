"""Terminal and markdown table formatting for run reports."""

from __future__ import annotations

from calltest.models import TestCase, TestResult, TestRun


def truncate(text: str, width: int) -> str:
    """Truncate text to width, adding ellipsis if needed."""
    if len(text) <= width:
        return text
    return text[: width - 1] + "…"


def format_table(
    headers: list[str],
    rows: list[list[str]],
    alignments: list[str] | None = None,
    fmt: str = "terminal",
) -> str:
    """Render a fixed-width table.

    Args:
        headers: Column header strings.
        rows: List of row data (each row is a list of strings).
        alignments: Per-column alignment ('l', 'r', 'c'). Defaults to left.
        fmt: 'terminal' for ASCII borders, 'markdown' for GFM table.
    """
    if not headers:
        return ""

    num_cols = len(headers)
    if alignments is None:
        alignments = ["l"] * num_cols

    col_widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row[:num_cols]):
            col_widths[i] = max(col_widths[i], len(cell))

    def _pad(text: str, width: int, align: str) -> str:
        if align == "r":
            return text.rjust(width)
        if align == "c":
            return text.center(width)
        return text.ljust(width)

    def _line(cells: list[str]) -> str:
        padded = [
            _pad(cells[i] if i < len(cells) else "", col_widths[i], alignments[i])
            for i in range(num_cols)
        ]
        return "| " + " | ".join(padded) + " |"

    header_line = _line(headers)
    data_lines = [_line(row) for row in rows]

    if fmt == "markdown":
        sep_parts = []
        for width, align in zip(col_widths, alignments):
            if align == "r":
                sep_parts.append("-" * (width - 1) + ":")
            elif align == "c":
                sep_parts.append(":" + "-" * max(width - 2, 1) + ":")
            else:
                sep_parts.append("-" * width)
        sep_line = "| " + " | ".join(sep_parts) + " |"
        return "\n".join([header_line, sep_line, *data_lines])

    border = "+-" + "-+-".join("-" * w for w in col_widths) + "-+"
    return "\n".join([border, header_line, border, *data_lines, border])


def format_duration(duration_ms: int | None) -> str:
    if duration_ms is None:
        return "-"
    return f"{duration_ms / 1000:.1f}s"


def format_cost(cents: int) -> str:
    return f"${cents / 100:.2f}"


def format_run_summary(
    run: TestRun,
    results: list[TestResult],
    cases: list[TestCase] | None = None,
    fmt: str = "terminal",
) -> str:
    """Format a per-case table and totals for one run.

    Case names are taken from ``cases`` when given, otherwise the case id
    is shown.
    """
    names = {c.id: c.name for c in cases or []}

    title = f"Test Run: {run.id} | {run.status.value}"
    avg = f"{run.avg_score:.2f}" if run.avg_score is not None else "-"
    totals = (
        f"Passed: {run.passed_cases}/{run.total_cases} | "
        f"Failed: {run.failed_cases} | Errored: {run.errored_cases} | "
        f"Avg score: {avg} | Duration: {format_duration(run.duration_ms)}"
    )
    usage = (
        f"Tokens: {run.total_input_tokens} in / {run.total_output_tokens} out | "
        f"Est. cost: {format_cost(run.estimated_cost_cents)}"
    )

    if not results:
        body = "No case results recorded."
    else:
        headers = ["Case", "Status", "Score", "Turns", "End", "Duration", "Notes"]
        alignments = ["l", "c", "r", "r", "l", "r", "l"]
        rows = []
        for r in results:
            failed_criteria = [c.criterion for c in r.criteria_results if not c.passed]
            if r.error_message:
                notes = r.error_message
            elif failed_criteria:
                notes = f"Failed: {failed_criteria[0]}"
            else:
                notes = r.evaluation_summary or ""
            rows.append(
                [
                    truncate(names.get(r.case_id, r.case_id), 30),
                    r.status.value,
                    str(r.overall_score) if r.overall_score is not None else "-",
                    str(r.turn_count),
                    r.end_reason.value if r.end_reason else "-",
                    format_duration(r.duration_ms),
                    truncate(notes, 40),
                ]
            )
        body = format_table(headers, rows, alignments, fmt=fmt)

    if fmt == "markdown":
        return f"## {title}\n\n{totals}\n\n{usage}\n\n{body}"
    return f"{title}\n{totals}\n{usage}\n\n{body}"
