"""Tests for the HTML results summary."""
from src.abtesting.analyze import analyze
from src.abtesting.report import render_results_summary
from src.abtesting.schema import Variant


def test_summary_page(tmp_path, make_experiment):
    exp = make_experiment(variants=[
        Variant(id="control", name="Original", is_control=True, impressions=1000, conversions=80),
        Variant(id="bold", name="<b>Bold</b>", impressions=1000, conversions=120),
    ])
    result = analyze(exp)
    path = render_results_summary(result.to_dict(), exp.id, artifacts_dir=str(tmp_path))
    html = path.read_text()
    assert "Winner" in html
    assert "winner: bold" in html
    assert "Original (control)" in html
    assert "12.00%" in html
    assert "&lt;b&gt;Bold&lt;/b&gt;" in html


def test_summary_insufficient_data(tmp_path, make_experiment):
    exp = make_experiment(min_sample_size=1000, variants=[
        Variant(id="control", impressions=50, conversions=6),
        Variant(id="bold", impressions=50, conversions=5),
    ])
    html = render_results_summary(analyze(exp).to_dict(), exp.id, artifacts_dir=str(tmp_path)).read_text()
    assert "Insufficient Data" in html
    assert "winner:" not in html
