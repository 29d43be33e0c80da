import html
import os
from datetime import datetime
from textwrap import shorten

import pandas as pd

from .utils import DAYS


def _money(value):
    return f"${value}"


def print_breakdown(allocation, title="Tip Breakdown"):
    print("\n" + title)
    print("=" * 60)
    print(f"{'Group':<30} {'Pct':>5} {'Count':>6} {'Each':>7} {'Total':>8}")
    print("-" * 60)

    for g in allocation.breakdown:
        label = shorten(g.label, width=30, placeholder="…")
        print(f"{label:<30} {g.percentage:>4}% {g.count:>6} {g.per_person:>7} {g.group_total:>8}")

    print("-" * 60)
    if allocation.remainder:
        print(f"{'Remainder':<30} {'':>5} {'':>6} {'':>7} {allocation.remainder:>8}")
    print(f"{'TOTAL':<30} {'':>5} {'':>6} {'':>7} {allocation.total:>8}")
    print("=" * 60)


def format_grid_text(grid, label, columns=DAYS, title="Weekly Tips"):
    """Plain-text table: one row per participant, one column per bucket."""
    width = max(5, *(len(c) for c in columns)) if columns else 5
    lines = [f"{title}: {label}", ""]
    header = " ".join(["Name    ", *(c.rjust(width) for c in columns), "Total".rjust(6)])
    lines.append(header)
    lines.append("-" * len(header))
    for row in grid.values():
        cells = [(_money(v) if v is not None else "-").rjust(width) for v in row.buckets]
        lines.append(" ".join([row.name.ljust(8), *cells, _money(row.total).rjust(6)]))
    return "\n".join(lines)


def format_grid_html(grid, label, columns=DAYS, title="Weekly Tips"):
    out = [f'<h2 style="font-family:sans-serif;color:#333">{html.escape(title)}: {html.escape(label)}</h2>']
    out.append('<table style="border-collapse:collapse;font-family:sans-serif;font-size:14px;width:100%">')
    out.append('<tr style="background:#6c5ce7;color:#fff">')
    out.append('<th style="padding:8px 12px;text-align:left">Name</th>')
    for c in columns:
        out.append(f'<th style="padding:8px 6px;text-align:center">{html.escape(c)}</th>')
    out.append('<th style="padding:8px 12px;text-align:right">Total</th></tr>')

    for i, row in enumerate(grid.values()):
        bg = "#f8f9fa" if i % 2 == 0 else "#ffffff"
        out.append(f'<tr style="background:{bg}">')
        out.append(f'<td style="padding:6px 12px;font-weight:600">{html.escape(row.name)}</td>')
        for v in row.buckets:
            color = "#333" if v is not None else "#ccc"
            text = _money(v) if v is not None else "-"
            out.append(f'<td style="padding:6px;text-align:center;color:{color}">{text}</td>')
        color = "#00b894" if row.total > 0 else "#ccc"
        text = _money(row.total) if row.total > 0 else "-"
        out.append(f'<td style="padding:6px 12px;text-align:right;font-weight:700;color:{color}">{text}</td>')
        out.append("</tr>")

    out.append("</table>")
    return "".join(out)


def print_grid(grid, label, columns=DAYS, title="Weekly Tips"):
    print()
    print(format_grid_text(grid, label, columns, title))


def grid_to_frame(grid, columns=DAYS):
    rows = []
    for pid, row in grid.items():
        rec = {"id": pid, "name": row.name}
        rec.update(zip(columns, row.buckets))
        rec["total"] = row.total
        rows.append(rec)
    return pd.DataFrame(rows, columns=["id", "name", *columns, "total"])


def export_grid(grid, columns=DAYS, directory=".", prefix="tips"):
    """Write the grid to CSV and Excel; returns both paths."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    csv_path = os.path.join(directory, f"{prefix}_{timestamp}.csv")
    xlsx_path = os.path.join(directory, f"{prefix}_{timestamp}.xlsx")

    df = grid_to_frame(grid, columns)
    df.to_csv(csv_path, index=False)
    df.to_excel(xlsx_path, index=False)

    print(f"Saved {len(df)} rows:")
    print(f" - CSV:   {csv_path}")
    print(f" - Excel: {xlsx_path}")
    return csv_path, xlsx_path
