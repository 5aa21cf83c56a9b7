"""Admin-only console, teleport and user-management routes."""
import time

from flask import jsonify, request

from metricsbridge.core.response_helpers import result_response
from metricsbridge.services.request_authorizer import current_auth


def _json_body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def register_admin_routes(app, state):
    """Register routes that require a live admin session."""
    admin_required = state["admin_required"]
    gateway = state["gateway"]

    def _actor():
        return current_auth().username

    # Route: /api/console/history
    @app.route("/api/console/history", methods=["GET"])
    @admin_required
    def console_history():
        lines = state["console_sink"].history()
        return jsonify({
            "console_output": lines,
            "timestamp": int(time.time() * 1000),
            "total_lines": len(lines),
        })

    # Route: /api/console
    @app.route("/api/console", methods=["POST"])
    @admin_required
    def console_command():
        return result_response(gateway.execute_console(_actor(), _json_body().get("command")))

    # Route: /api/teleport
    @app.route("/api/teleport", methods=["POST"])
    @admin_required
    def teleport():
        body = _json_body()
        result = gateway.teleport(
            _actor(),
            body.get("player"),
            body.get("x"),
            body.get("y"),
            body.get("z"),
            body.get("world"),
        )
        return result_response(result)

    # Route: /api/admin/users
    @app.route("/api/admin/users", methods=["GET"])
    @admin_required
    def list_users():
        return result_response(gateway.list_users())

    @app.route("/api/admin/users", methods=["POST"])
    @admin_required
    def create_user():
        body = _json_body()
        result = gateway.create_user(
            _actor(),
            body.get("username"),
            body.get("password"),
            body.get("isAdmin", False),
        )
        return result_response(result)

    # Route: /api/admin/users/<username>
    @app.route("/api/admin/users/<username>", methods=["DELETE"])
    @admin_required
    def delete_user(username):
        return result_response(gateway.delete_user(_actor(), username))

    # Route: /api/admin/users/<username>/admin
    @app.route("/api/admin/users/<username>/admin", methods=["PUT"])
    @admin_required
    def set_admin_status(username):
        return result_response(gateway.set_admin_status(_actor(), username, _json_body().get("isAdmin")))

    # Route: /api/admin/users/<username>/password
    @app.route("/api/admin/users/<username>/password", methods=["PUT"])
    @admin_required
    def reset_password(username):
        return result_response(gateway.reset_password(_actor(), username, _json_body().get("newPassword")))
