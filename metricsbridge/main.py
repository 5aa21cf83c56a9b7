"""HTTP metrics and admin bridge for a running Minecraft server.

The bridge provides:
- Live tick, memory, player, world and storage metrics
- Username/password sessions backed by a persisted user store
- Admin-only console commands, teleport and user management
"""

from flask import Flask

from metricsbridge.core.config import apply_default_flask_config, load_settings
from metricsbridge.core.logging_setup import build_loggers
from metricsbridge.core.user_store import UserStore
from metricsbridge.routes.admin_routes import register_admin_routes
from metricsbridge.routes.auth_routes import register_auth_routes
from metricsbridge.routes.metrics_routes import register_metrics_routes
from metricsbridge.services import bootstrap as bootstrap_service
from metricsbridge.services.admin_gateway import AdminCommandGateway
from metricsbridge.services.app_lifecycle import install_flask_hooks
from metricsbridge.services.console_log import ConsoleLogSink
from metricsbridge.services.host import NullHost
from metricsbridge.services.metrics_aggregator import MetricsAggregator
from metricsbridge.services.metrics_sampler import MetricsSampler
from metricsbridge.services.rcon_host import RconHost
from metricsbridge.services.request_authorizer import RequestAuthorizer, make_admin_required
from metricsbridge.services.session_manager import SessionManager
from metricsbridge.state import BridgeState

EXTENSION_KEY = "metricsbridge"


def build_state(settings, host=None, *, sampler=None, console_sink=None):
    """Wire every bridge component from resolved settings."""
    log_bridge_action, log_bridge_system, log_bridge_exception = build_loggers(settings.display_tz, settings.log_dir)

    host_ref = {"host": host if host is not None else NullHost()}

    def get_host():
        return host_ref["host"]

    user_store = UserStore(settings.users_file, bcrypt_rounds=settings.bcrypt_rounds, log_action=log_bridge_system)
    session_manager = SessionManager(user_store, timeout_seconds=settings.session_timeout_seconds)
    sampler = sampler if sampler is not None else MetricsSampler()
    console_sink = console_sink if console_sink is not None else ConsoleLogSink(settings.console_history_lines)
    aggregator = MetricsAggregator(
        sampler,
        get_host,
        world_dir=settings.world_dir,
        disk_path=str(settings.world_dir.parent),
        log_exception=log_bridge_exception,
    )
    gateway = AdminCommandGateway(
        get_host,
        user_store,
        session_manager,
        console_sink,
        log_action=log_bridge_action,
        log_exception=log_bridge_exception,
    )
    return BridgeState({
        "settings": settings,
        "user_store": user_store,
        "session_manager": session_manager,
        "sampler": sampler,
        "console_sink": console_sink,
        "aggregator": aggregator,
        "gateway": gateway,
        "authorizer": RequestAuthorizer.build(session_manager, settings.fallback_token),
        "admin_required": make_admin_required(session_manager, log_bridge_action),
        "host_ref": host_ref,
        "get_host": get_host,
        "log_bridge_action": log_bridge_action,
        "log_bridge_system": log_bridge_system,
        "log_bridge_exception": log_bridge_exception,
    })


def create_app(settings=None, host=None, **components):
    """Return a configured Flask app; ``components`` may inject a sampler or console sink."""
    settings = settings if settings is not None else load_settings()
    state = build_state(settings, host, **components)

    app = Flask(__name__)
    apply_default_flask_config(app)
    install_flask_hooks(
        app,
        authorizer=state.authorizer,
        log_bridge_action=state.log_bridge_action,
        log_bridge_exception=state.log_bridge_exception,
    )
    register_auth_routes(app, state)
    register_metrics_routes(app, state)
    register_admin_routes(app, state)
    app.extensions[EXTENSION_KEY] = state
    return app


def get_state(app):
    return app.extensions[EXTENSION_KEY]


def attach_host(app, host):
    """Swap the live host collaborator; requests already in flight keep the old one."""
    state = get_state(app)
    state.host_ref["host"] = host if host is not None else NullHost()
    state.log_bridge_system("host-attached", command=type(state.host_ref["host"]).__name__)


def run_server(app):
    """Run boot steps, then serve HTTP until interrupted."""
    state = get_state(app)
    settings = state.settings

    def _attach_rcon_host():
        attach_host(app, RconHost(
            settings.server_properties,
            rcon_host=settings.rcon_host,
            rcon_port=settings.rcon_port,
            log_exception=state.log_bridge_exception,
        ))

    def _announce_console():
        state.console_sink.append("Bridge web server started - console history active")

    boot_steps = [
        ("attach_rcon_host", _attach_rcon_host),
        ("announce_console", _announce_console),
    ]
    bootstrap_service.run_server(
        app,
        settings,
        state.log_bridge_system,
        state.log_bridge_exception,
        boot_steps,
    )


def main():
    run_server(create_app())


if __name__ == "__main__":
    main()
