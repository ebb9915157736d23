"""
HTML results summary for an analysed experiment.

Renders analysis.json content with Jinja2 to
artifacts/abtesting/<experiment_id>/results_summary.html.
"""

import logging
from pathlib import Path

from jinja2 import Environment, select_autoescape

from .config import Config

logger = logging.getLogger(__name__)

SUMMARY_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>A/B test {{ experiment_id }} - results</title>
  <style>
    body { font-family: Helvetica, Arial, sans-serif; margin: 32px; color: #222; }
    table { border-collapse: collapse; margin-top: 16px; }
    th, td { padding: 6px 12px; border-bottom: 1px solid #ddd; text-align: right; }
    th:first-child, td:first-child { text-align: left; }
    .outcome { padding: 12px; border-radius: 6px; }
    .winner { background: #d5f5e3; }
    .insufficient_data { background: #fdebd0; }
    .no_significant_difference { background: #ebf5fb; }
  </style>
</head>
<body>
  <h1>A/B test {{ experiment_id }}</h1>
  <p>Analysed {{ result.analysis_timestamp }} at {{ "%.0f"|format(result.confidence_level * 100) }}% confidence,
     minimum {{ result.min_sample_size }} impressions per variant.</p>
  <div class="outcome {{ result.outcome }}">
    <strong>{{ result.outcome|replace("_", " ")|title }}</strong>
    {% if result.winning_variant_id %} &mdash; winner: {{ result.winning_variant_id }}{% endif %}
    <p>{{ result.rationale }}</p>
  </div>
  <table>
    <tr>
      <th>Variant</th><th>Impressions</th><th>Conversions</th><th>Rate</th>
      <th>vs control</th><th>p-value vs best</th>
    </tr>
    {% for v in result.variant_stats %}
    <tr>
      <td>{{ v.name or v.variant_id }}{% if v.is_control %} (control){% endif %}</td>
      <td>{{ v.impressions }}</td>
      <td>{{ v.conversions }}</td>
      <td>{% if v.conversion_rate is not none %}{{ "%.2f"|format(v.conversion_rate * 100) }}%{% else %}-{% endif %}</td>
      <td>{% if v.relative_improvement is not none %}{{ "%+.1f"|format(v.relative_improvement) }}%{% else %}-{% endif %}</td>
      <td>{% if v.p_value is not none %}{{ "%.4f"|format(v.p_value) }}{% else %}-{% endif %}</td>
    </tr>
    {% endfor %}
  </table>
  {% if not result.srm_passed %}
  <p><strong>Sample ratio mismatch</strong> (p={{ "%.4f"|format(result.srm_p_value) }}).</p>
  {% endif %}
  {% if result.required_sample_size %}
  <p>Estimated sample needed to confirm the current lift: {{ result.required_sample_size }} impressions per variant.</p>
  {% endif %}
</body>
</html>
"""


def render_results_summary(
    result: dict,
    experiment_id: str,
    artifacts_dir: str = Config.ARTIFACTS_DIR,
) -> Path:
    """
    Render the results summary page.

    Args:
        result: AnalysisResult.to_dict() output
        experiment_id: Experiment identifier
        artifacts_dir: Base artifacts directory

    Returns:
        Path of the written HTML file
    """
    env = Environment(autoescape=select_autoescape(default_for_string=True))
    html = env.from_string(SUMMARY_TEMPLATE).render(result=result, experiment_id=experiment_id)

    out_dir = Path(artifacts_dir) / experiment_id
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / "results_summary.html"
    out_path.write_text(html, encoding="utf-8")
    logger.info(f"Results summary written to {out_path}")
    return out_path
