"""Metrics snapshot route."""
from flask import jsonify


def register_metrics_routes(app, state):
    """Register the metrics route; any authenticated caller may read it."""

    # Route: /api/metrics
    @app.route("/api/metrics", methods=["GET"])
    def metrics():
        return jsonify(state["aggregator"].snapshot().to_dict())
