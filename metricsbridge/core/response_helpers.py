"""Shared Flask JSON response helpers for the API surface."""

from flask import jsonify


def failure_response(message, status_code=200, code=None, **payload):
    """Return ``{success: false, error}`` with an optional machine-readable code."""
    body = {"success": False, "error": message}
    if code:
        body["code"] = code
    body.update(payload)
    return jsonify(body), status_code


def unauthorized_response():
    """Return the generic 401 used for missing, invalid or expired credentials."""
    return jsonify("Unauthorized"), 401


def invalid_credentials_response():
    """Return login rejection without revealing which field was wrong."""
    return failure_response("Invalid credentials", 401, code="invalid_credentials")


def forbidden_response(message="Admin privileges required"):
    """Return the 403 used for authenticated callers lacking privilege."""
    return failure_response(message, 403, code="forbidden")


def internal_error_response():
    """Return generic internal-error response payload."""
    return failure_response("internal_error", 500, code="internal_error")


def result_response(result):
    """Render a gateway result dict, using its ``status`` as the HTTP code."""
    body = dict(result)
    status_code = body.pop("status", 200)
    return jsonify(body), status_code
