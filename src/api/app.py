"""Flask API serving active A/B tests and collecting impressions/conversions."""
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(ROOT))

from flask import Flask, request, jsonify

from src.abtesting.analyze import run_analysis
from src.abtesting.config import Config
from src.abtesting.event_store import LocalEventSink
from src.abtesting.registry import ExperimentRegistry
from src.abtesting.schema import ExperimentError

logger = logging.getLogger(__name__)


def create_app(registry=None, data_dir=None, artifacts_dir=None):
    app = Flask(__name__)
    registry = registry or ExperimentRegistry()
    data_dir = data_dir or Config.DATA_DIR
    artifacts_dir = artifacts_dir or Config.ARTIFACTS_DIR
    sink = LocalEventSink(base_dir=data_dir, registry=registry)

    def _context():
        data = request.get_json(silent=True) or {}
        return {k: str(data[k]) for k in ("visitor_id", "page_load_id") if data.get(k)}

    def _record(record, test_id, variant_id, kind):
        try:
            accepted = record(test_id, variant_id, **_context())
        except KeyError as e:
            return jsonify({"success": False, "message": str(e).strip("'")}), 404
        except Exception as e:
            logger.error(f"Error recording {kind} for test {test_id}, variant {variant_id}: {e}")
            return jsonify({"success": False, "message": f"Failed to record {kind}"}), 500
        return jsonify({"success": True, "data": {"recorded": bool(accepted)}})

    @app.route("/ping", methods=["GET"])
    def ping():
        return "pong"

    @app.route("/api/abtesting/active", methods=["GET"])
    def active():
        try:
            tests = registry.get_active_experiments()
        except Exception as e:
            logger.error(f"Error getting active A/B tests: {e}")
            return jsonify({"success": False, "message": "Failed to get active A/B tests"}), 500
        return jsonify({"success": True, "data": [t.to_dict() for t in tests]})

    @app.route("/api/abtesting/tests/<test_id>/variants/<variant_id>/impression", methods=["POST"])
    def impression(test_id, variant_id):
        return _record(sink.record_impression, test_id, variant_id, "impression")

    @app.route("/api/abtesting/tests/<test_id>/variants/<variant_id>/conversion", methods=["POST"])
    def conversion(test_id, variant_id):
        return _record(sink.record_conversion, test_id, variant_id, "conversion")

    @app.route("/api/abtesting/tests/<test_id>/results", methods=["GET"])
    def results(test_id):
        try:
            result = run_analysis(
                test_id,
                registry=registry,
                data_dir=data_dir,
                artifacts_dir=artifacts_dir,
            )
        except KeyError as e:
            return jsonify({"success": False, "message": str(e).strip("'")}), 404
        except ExperimentError as e:
            return jsonify({"success": False, "message": str(e)}), 409
        return jsonify({"success": True, "data": result.to_dict()})

    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app.run(host="0.0.0.0", port=5000)
