"""Login, logout, session introspection and password-change routes."""
import time

from flask import jsonify, request

from metricsbridge.core.response_helpers import invalid_credentials_response, result_response
from metricsbridge.services.request_authorizer import SESSION_HEADER, current_auth, login_required


def _json_body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _session_token():
    return (request.headers.get(SESSION_HEADER) or "").strip()


def register_auth_routes(app, state):
    """Register session lifecycle routes; login/logout/session/test are unauthenticated."""
    sessions = state["session_manager"]
    log_action = state["log_bridge_action"]

    # Route: /api/login
    @app.route("/api/login", methods=["POST"])
    def login():
        body = _json_body()
        username = body.get("username")
        password = body.get("password")
        if not isinstance(username, str) or not isinstance(password, str) or not username.strip() or not password:
            log_action("login", rejection_message="Missing credentials.")
            return invalid_credentials_response()

        token = sessions.create_session(username, password)
        if token is None:
            log_action("login", actor=username.strip(), rejection_message="Invalid credentials.")
            return invalid_credentials_response()

        session = sessions.get_session(token)
        log_action("login", actor=session.username)
        return jsonify({
            "success": True,
            "sessionToken": token,
            "displayName": session.display_name,
            "isAdmin": session.is_admin,
            "username": session.username,
        })

    # Route: /api/logout
    @app.route("/api/logout", methods=["POST"])
    def logout():
        token = _session_token()
        session = sessions.get_session(token)
        sessions.invalidate_session(token)
        if session is not None:
            log_action("logout", actor=session.username)
        return jsonify({"success": True})

    # Route: /api/session
    @app.route("/api/session", methods=["GET", "HEAD"])
    def session_info():
        session = sessions.touch(_session_token())
        if session is None:
            return jsonify({"authenticated": False})
        payload = {"authenticated": True}
        payload.update(session.to_dict())
        return jsonify(payload)

    # Route: /api/test
    @app.route("/api/test", methods=["GET"])
    def health_check():
        return jsonify({
            "status": "ok",
            "timestamp": int(time.time() * 1000),
            "websocket_supported": False,
        })

    # Route: /api/change-password
    @app.route("/api/change-password", methods=["POST"])
    @login_required
    def change_password():
        body = _json_body()
        result = state["gateway"].change_password(
            current_auth().username,
            body.get("oldPassword"),
            body.get("newPassword"),
            body.get("confirmPassword"),
        )
        return result_response(result)
