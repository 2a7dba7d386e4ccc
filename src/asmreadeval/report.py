from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>asmreadeval Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>asmreadeval Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Assembly</th><td><code>{{ params.assembly }}</code></td></tr>
      <tr><th>Alignments</th><td><code>{{ outputs.sam }}</code></td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Parameters</h3>
    <table>
      <tr><th>Insert size</th><td>{{ params.insert_size }}</td></tr>
      <tr><th>Insert size SD</th><td>{{ params.insert_sd }}</td></tr>
      <tr><th>Realistic distance</th><td>{{ params.realistic_distance }}</td></tr>
      <tr><th>Pairing</th><td>{{ params.pairing }}</td></tr>
      <tr><th>Min contig length (coverage)</th><td>{{ params.min_contig_length }}</td></tr>
    </table>
  </div>
</div>

<h2>Read mapping</h2>
<table>
  <tr><th>Reads</th><td>{{ stats.num_reads }}</td></tr>
  <tr><th>Read pairs</th><td>{{ stats.num_pairs }}</td></tr>
  <tr><th>Pairs evaluated</th><td>{{ stats.total_mappings }}</td></tr>
  <tr><th>Percent mapping</th><td>{{ "%.2f"|format(stats.percent_mapping) }}</td></tr>
  <tr><th>Good mappings</th><td>{{ stats.good_mappings }}</td></tr>
  <tr><th>Good mapping percent</th><td>{{ "%.2f"|format(stats.good_mapping_percent) }}</td></tr>
  <tr><th>Bad mappings</th><td>{{ stats.bad_mappings }}</td></tr>
  <tr><th>Supported bridges</th><td>{{ stats.potential_bridges }}</td></tr>
</table>

<h2>Coverage</h2>
<table>
  <tr><th>Mean coverage</th><td>{{ stats.mean_coverage }}</td></tr>
  <tr><th>Uncovered bases</th><td>{{ stats.n_uncovered_bases }} ({{ "%.4f"|format(stats.p_uncovered_bases) }})</td></tr>
  <tr><th>Contigs with uncovered bases</th><td>{{ stats.n_uncovered_base_contigs }} ({{ "%.4f"|format(stats.p_uncovered_base_contigs) }})</td></tr>
  <tr><th>Uncovered contigs (mean &lt; 1)</th><td>{{ stats.n_uncovered_contigs }} ({{ "%.4f"|format(stats.p_uncovered_contigs) }})</td></tr>
  <tr><th>Low-coverage contigs (mean &lt; 10)</th><td>{{ stats.n_lowcovered_contigs }} ({{ "%.4f"|format(stats.p_lowcovered_contigs) }})</td></tr>
</table>

<h2>Plots</h2>

<div class="grid">
  <div class="card">
    <h3>Mapping classes</h3>
    <img src="{{ plots.mapping_classes }}" alt="mapping classes">
  </div>
  <div class="card">
    <h3>Classification branches</h3>
    <img src="{{ plots.pair_branches }}" alt="classification branches">
  </div>
</div>

<div class="grid" style="margin-top:16px;">
  <div class="card">
    <h3>Contig coverage</h3>
    <img src="{{ plots.contig_coverage }}" alt="contig coverage histogram">
  </div>
</div>

{% if bridges %}
<h2>Supported bridges</h2>
<table>
  <tr><th>Contig A</th><th>Contig B</th><th>Supporting pairs</th></tr>
  {% for b in bridges %}
  <tr><td><code>{{ b.contig_a }}</code></td><td><code>{{ b.contig_b }}</code></td><td>{{ b.support }}</td></tr>
  {% endfor %}
</table>
{% endif %}

<h2>Outputs</h2>
<ul>
  <li><code>{{ outputs.supported_bridges }}</code> (bridges supported by more than one pair)</li>
  <li><code>{{ outputs.contig_coverage }}</code> (per-contig coverage)</li>
  <li><code>{{ outputs.summary }}</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>Contigs shorter than {{ params.min_contig_length }} bp are excluded from coverage counts but not from the proportions' denominators.</li>
  <li>Pairs whose mates sit near the ends of two different contigs count as good and as evidence for joining those contigs.</li>
</ul>

<hr>
<p class="small">asmreadeval {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    summary: Dict[str, Any],
    plots: Dict[str, str],
    max_bridges: int = 200,
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    bridges = list(summary.get("supported_bridges", []))
    bridges.sort(key=lambda b: -int(b.get("support", 0)))

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        stats=summary.get("read_stats", {}),
        params=summary.get("params", {}),
        outputs=summary.get("outputs", {}),
        bridges=bridges[:max_bridges],
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
