#!/usr/bin/env python3
"""Generate an HTML comparison page from a saved benchmark report, with trend analysis."""

import argparse
import html
import json
import sys
from datetime import datetime
from pathlib import Path

from compare_olap.runner import geomean

# Maximum number of historical entries to retain in benchmark_history.json
MAX_HISTORY_ENTRIES = 50

# Relative latency change inside which a query counts as unchanged
STABLE_BAND_PCT = 5.0


HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Event Query Benchmarks</title>
    <script src="https://cdn.jsdelivr.net/npm/chart.js@4.4.7/dist/chart.umd.min.js"></script>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Arial, sans-serif;
            line-height: 1.5;
            color: #333;
            background: #f5f5f5;
            padding: 20px;
        }}

        .container {{
            max-width: 1200px;
            margin: 0 auto;
            background: white;
            padding: 32px;
            border-radius: 8px;
        }}

        .metadata {{
            display: grid;
            grid-template-columns: repeat(auto-fit, minmax(200px, 1fr));
            gap: 12px;
            background: #ecf0f1;
            padding: 16px;
            border-radius: 5px;
        }}

        .metadata-label {{
            display: block;
            font-weight: 600;
            color: #7f8c8d;
            font-size: 0.9em;
        }}

        table {{
            width: 100%;
            border-collapse: collapse;
            margin: 16px 0 32px 0;
        }}

        thead {{
            background: #3498db;
            color: white;
        }}

        th, td {{
            padding: 10px;
            text-align: left;
            border-bottom: 1px solid #ddd;
        }}

        .number {{
            text-align: right;
            font-family: "Courier New", monospace;
        }}

        .error {{
            color: #721c24;
        }}

        .trend {{
            display: inline-block;
            padding: 2px 8px;
            border-radius: 8px;
            font-size: 0.8em;
            font-weight: 600;
            white-space: nowrap;
        }}

        .trend-improving {{
            background: #d4edda;
            color: #155724;
        }}

        .trend-regressing {{
            background: #f8d7da;
            color: #721c24;
        }}

        .trend-stable {{
            background: #e2e3e5;
            color: #383d41;
        }}

        .chart-container canvas {{
            max-height: 350px;
        }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Event Query Benchmarks</h1>
        <p>Median latency per query and engine (ms, lower is better)</p>

        <div class="metadata">
            <div><span class="metadata-label">Report</span>{timestamp}</div>
            <div><span class="metadata-label">Run</span>{run_label}</div>
            <div><span class="metadata-label">Platform</span>{platform}</div>
            <div><span class="metadata-label">Engines</span>{engines}</div>
        </div>

        {matrix_section}

        {failures_section}

        {trend_charts_section}
    </div>
    {chart_scripts}
</body>
</html>
"""


def compute_trend(current_ms, previous_ms):
    """Compute the trend between two latencies.

    Returns a tuple of (direction, pct_change) where direction is one of
    'improving' (faster), 'regressing' (slower) or 'stable'. A change of
    less than 5% in either direction is considered stable.
    """
    if previous_ms is None or previous_ms == 0 or current_ms is None:
        return ("stable", 0.0)
    pct = ((current_ms - previous_ms) / previous_ms) * 100.0
    if pct < -STABLE_BAND_PCT:
        return ("improving", pct)
    elif pct > STABLE_BAND_PCT:
        return ("regressing", pct)
    return ("stable", pct)


def trend_badge(direction, pct):
    """Return an HTML badge for a trend indicator."""
    if direction == "improving":
        return f'<span class="trend trend-improving">▼ {pct:.1f}%</span>'
    elif direction == "regressing":
        return f'<span class="trend trend-regressing">▲ +{pct:.1f}%</span>'
    return '<span class="trend trend-stable">● stable</span>'


def series_key(query_id, engine):
    return f"{query_id}/{engine}"


def load_report(path):
    """Load a report written by ``compare-olap-bench``."""
    with open(path, "r") as f:
        data = json.load(f)
    if not isinstance(data, dict) or "queries" not in data:
        raise ValueError(f"{path}: not a benchmark report")
    return data


def report_medians(report):
    """Map 'Q1/duckdb' -> median ms for every successful summary."""
    return {
        series_key(q["query_id"], q["engine"]): q["median_ms"]
        for q in report.get("queries", [])
        if q.get("runs", 0) > 0
    }


def load_history(path):
    """Load benchmark history from a JSON file.

    Returns a list of entry dicts, each with 'timestamp', 'run_label' and
    'medians' (keyed by 'query/engine').
    """
    if not path or not Path(path).exists():
        return []
    with open(path, "r") as f:
        data = json.load(f)
    if isinstance(data, list):
        return data
    return data.get("entries", [])


def append_history(history, report, run_label):
    """Append the report's medians to the history list.

    Returns the updated list (capped at MAX_HISTORY_ENTRIES).
    """
    entry = {
        "timestamp": report.get("timestamp")
                     or datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "run_label": str(run_label),
        "medians": report_medians(report),
    }
    history.append(entry)
    return history[-MAX_HISTORY_ENTRIES:]


def _previous_medians(history):
    """Return the medians dict from the second-to-last history entry."""
    if len(history) < 2:
        return {}
    return history[-2].get("medians", {})


def generate_matrix_section(report, history):
    """HTML table: one row per query, one column per engine, with trend badges."""
    engines = report.get("engines", {})
    if not report.get("queries") or not engines:
        return ""

    prev = _previous_medians(history)
    by_key = {series_key(q["query_id"], q["engine"]): q for q in report["queries"]}
    query_ids = list(dict.fromkeys(q["query_id"] for q in report["queries"]))

    head = "".join(f"<th>{html.escape(info['name'])}</th>" for info in engines.values())
    rows = []
    for qid in query_ids:
        cells = []
        for engine in engines:
            key = series_key(qid, engine)
            q = by_key.get(key)
            if q is None:
                cells.append('<td class="number">-</td>')
            elif q.get("runs", 0) == 0:
                cells.append('<td class="number error">error</td>')
            else:
                direction, pct = compute_trend(q["median_ms"], prev.get(key))
                cells.append(
                    f'<td class="number">{q["median_ms"]:,.1f} '
                    f'{trend_badge(direction, pct)}</td>'
                )
        rows.append(f"<tr><td>{html.escape(qid)}</td>{''.join(cells)}</tr>")

    geo_cells = []
    for engine in engines:
        medians = [q["median_ms"] for q in report["queries"]
                   if q["engine"] == engine and q.get("runs", 0) > 0]
        geo_cells.append(f'<td class="number">{geomean(medians):,.1f}</td>')
    rows.append(f"<tr><th>GeoMean</th>{''.join(geo_cells)}</tr>")

    return f"""
        <h2>Median latency (ms)</h2>
        <table>
            <thead><tr><th>Query</th>{head}</tr></thead>
            <tbody>
                {''.join(rows)}
            </tbody>
        </table>
    """


def generate_failures_section(report):
    """HTML list of setup failures and failing (query, engine) pairs."""
    items = [
        f"<li>{html.escape(engine)} setup: {html.escape(error)}</li>"
        for engine, error in report.get("setup_errors", {}).items()
    ]
    items.extend(
        f"<li>{html.escape(q['query_id'])} on {html.escape(q['engine'])}: "
        f"{html.escape(str(q.get('error')))}</li>"
        for q in report.get("queries", [])
        if q.get("runs", 0) == 0
    )
    if not items:
        return ""
    return f"""
        <h2>Failures</h2>
        <ul class="error">
            {''.join(items)}
        </ul>
    """


def generate_trend_charts_section(history, engines):
    """Generate the HTML + JS for a per-engine geomean chart across runs.

    Returns a tuple (section_html, script_html). If there are fewer than
    2 history entries no chart is rendered.
    """
    if len(history) < 2 or not engines:
        return ("", "")

    labels = [e.get("run_label") or e.get("timestamp", "?") for e in history]

    palette = [
        "rgb(52,152,219)",
        "rgb(46,204,113)",
        "rgb(231,76,60)",
        "rgb(155,89,182)",
        "rgb(241,196,15)",
        "rgb(230,126,34)",
    ]

    datasets = []
    for idx, engine in enumerate(engines):
        points = []
        for entry in history:
            medians = [ms for key, ms in entry.get("medians", {}).items()
                       if key.split("/", 1)[-1] == engine]
            points.append(round(geomean(medians), 2) if medians else None)
        datasets.append({
            "label": engine,
            "data": points,
            "borderColor": palette[idx % len(palette)],
            "tension": 0.3,
            "fill": False,
        })

    section = (
        '<h2>Trend</h2>\n'
        '<div class="chart-container"><canvas id="trendChart"></canvas></div>'
    )
    script = f"""<script>
new Chart(document.getElementById('trendChart'), {{
    type: 'line',
    data: {{
        labels: {json.dumps(labels)},
        datasets: {json.dumps(datasets)}
    }},
    options: {{
        responsive: true,
        scales: {{
            y: {{ beginAtZero: true, title: {{ display: true, text: 'GeoMean median (ms)' }} }},
            x: {{ title: {{ display: true, text: 'Run' }} }}
        }}
    }}
}});
</script>"""
    return (section, script)


def render_html(report, history, run_label="N/A"):
    """Full HTML page for *report*, comparing against the previous history entry."""
    engines = report.get("engines", {})
    trend_section, chart_scripts = generate_trend_charts_section(history, list(engines))
    return HTML_TEMPLATE.format(
        timestamp=html.escape(str(report.get("timestamp", ""))),
        run_label=html.escape(str(run_label)),
        platform=html.escape(str(report.get("hardware", {}).get("platform", "unknown"))),
        engines=html.escape(", ".join(
            f"{info['name']} {info['version']}" for info in engines.values()
        )),
        matrix_section=generate_matrix_section(report, history),
        failures_section=generate_failures_section(report),
        trend_charts_section=trend_section,
        chart_scripts=chart_scripts,
    )


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate HTML report from a benchmark report")
    parser.add_argument("report", help="Path to a report JSON written by compare-olap-bench")
    parser.add_argument("--history", type=str, help="Path to benchmark history JSON")
    parser.add_argument("--output", type=str, required=True, help="Output HTML file path")
    parser.add_argument("--run-label", type=str, default="N/A", help="Label for this run (e.g. commit or CI run)")

    args = parser.parse_args(argv)

    try:
        report = load_report(args.report)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    history = load_history(args.history)
    history = append_history(history, report, args.run_label)

    page = render_html(report, history, args.run_label)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(page)

    # Write updated history next to the HTML output
    history_out = output_path.parent / "benchmark_history.json"
    with open(history_out, "w") as f:
        json.dump(history, f, indent=2)

    print(f"Report generated: {output_path}", file=sys.stderr)
    print(f"History updated: {history_out} ({len(history)} entries)", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
