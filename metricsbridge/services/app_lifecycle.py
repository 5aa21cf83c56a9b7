"""Flask lifecycle hooks for request authorization and error containment."""
from flask import g, has_request_context, request
from werkzeug.exceptions import HTTPException

from metricsbridge.core.response_helpers import internal_error_response, unauthorized_response


def install_flask_hooks(app, *, authorizer, log_bridge_action, log_bridge_exception):
    # Install request/error hooks using explicit runtime callbacks.

    @app.before_request
    def _authorize_api_request():
        g.auth = None
        if request.method == "OPTIONS" or not authorizer.is_protected(request.path):
            return None
        context = authorizer.authorize(request)
        if context is None:
            log_bridge_action(
                "reject",
                command=f"{request.method} {request.path}",
                rejection_message="Unauthorized.",
            )
            return unauthorized_response()
        g.auth = context
        return None

    @app.errorhandler(Exception)
    def _unhandled_exception_handler(exc):
        if isinstance(exc, HTTPException):
            return exc
        path = request.path if has_request_context() else "unknown-path"
        log_bridge_exception(f"unhandled_exception path={path}", exc)
        return internal_error_response()
