"""Logging setup helpers."""

from metricsbridge.core.action_logging import make_log_action, make_log_exception

ACTION_LOG_NAME = "bridge-actions.log"
SYSTEM_LOG_NAME = "bridge-system.log"


def build_loggers(display_tz, log_dir):
    """Create bridge action/system log writers and the exception logger."""
    log_bridge_action = make_log_action(display_tz, log_dir, log_dir / ACTION_LOG_NAME)
    log_bridge_system = make_log_action(display_tz, log_dir, log_dir / SYSTEM_LOG_NAME)
    log_bridge_exception = make_log_exception(log_bridge_system)
    return log_bridge_action, log_bridge_system, log_bridge_exception
