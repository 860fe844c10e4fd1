"""Fixed-width text tables for query results."""

CELL_WIDTH = 20


def format_value(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"Blob(len={len(value)})"
    return str(value)


def divider(column_count: int) -> str:
    return "+" + ("-" * (CELL_WIDTH + 2) + "+") * column_count


def format_row(values) -> str:
    return "".join(f"| {format_value(v):<{CELL_WIDTH}} " for v in values) + "|"


def format_table(columns, rows) -> str:
    """Render *columns* and *rows* as a boxed table."""
    n = len(columns)
    lines = [divider(n), format_row(columns), divider(n)]
    lines.extend(format_row(row) for row in rows)
    lines.append(divider(n))
    return "\n".join(lines)


def section_banner(*lines: str, width: int = 72) -> str:
    """A title block framed by '=' rules, with a blank line around it."""
    rule = "=" * width
    return "\n".join(["", rule, *lines, rule, ""])
