"""Runtime settings resolved from the bridge config file."""

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo

from metricsbridge.core.web_config import WebConfig

SOURCE_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_NAME = "metricsbridge.env"


def default_base_dir(source_root=None):
    """Return the checkout root when run from source, else the working directory."""
    source_root = SOURCE_ROOT if source_root is None else Path(source_root)
    if (source_root / "bridge.py").is_file() and (source_root / "metricsbridge").is_dir():
        return source_root
    return Path.cwd()


@dataclass(frozen=True)
class BridgeSettings:
    """Resolved configuration for one bridge process."""
    web_host: str
    web_port: int
    fallback_token: str
    users_file: Path
    log_dir: Path
    world_dir: Path
    session_timeout_seconds: float
    bcrypt_rounds: int
    console_history_lines: int
    rcon_host: str
    rcon_port: int
    server_properties: Path
    display_tz: object


def resolve_fallback_token(cfg, *env_names):
    """Resolve the legacy shared-secret token from env/config.

    Returns an empty string when nothing is configured, which disables the
    bearer/query token path entirely.
    """
    for name in env_names:
        value = (cfg.environ.get(name) or "").strip()
        if value:
            return value
    return (cfg.get_str("FALLBACK_TOKEN", "") or "").strip()


def resolve_display_tz(name):
    try:
        return ZoneInfo(name)
    except Exception:
        return ZoneInfo("UTC")


def load_settings(config_path=None, base_dir=None, environ=None):
    """Load ``BridgeSettings`` from a config file plus environment overrides."""
    base = Path(base_dir) if base_dir is not None else default_base_dir()
    if config_path is None:
        env = os.environ if environ is None else environ
        config_path = env.get("METRICSBRIDGE_CONFIG") or (base / DEFAULT_CONFIG_NAME)
    cfg = WebConfig(config_path, base, environ=environ)
    return BridgeSettings(
        web_host=cfg.get_str("WEB_HOST", "0.0.0.0"),
        web_port=cfg.get_int("WEB_PORT", 8765, minimum=1),
        fallback_token=resolve_fallback_token(cfg, "METRICSBRIDGE_TOKEN"),
        users_file=cfg.get_path("USERS_FILE", Path("data") / "users.json"),
        log_dir=cfg.get_path("LOG_DIR", Path("logs")),
        world_dir=cfg.get_path("WORLD_DIR", Path("world")),
        session_timeout_seconds=cfg.get_float("SESSION_TIMEOUT_HOURS", 24.0, minimum=1 / 60.0) * 3600,
        bcrypt_rounds=cfg.get_int("BCRYPT_ROUNDS", 12, minimum=4),
        console_history_lines=cfg.get_int("CONSOLE_HISTORY_LINES", 1000, minimum=1),
        rcon_host=cfg.get_str("RCON_HOST", "127.0.0.1"),
        rcon_port=cfg.get_int("RCON_PORT", 25575, minimum=1),
        server_properties=cfg.get_path("SERVER_PROPERTIES", Path("server.properties")),
        display_tz=resolve_display_tz(cfg.get_str("DISPLAY_TZ", "UTC")),
    )


def apply_default_flask_config(app):
    """Apply baseline Flask runtime config values."""
    app.json.sort_keys = False
    app.config["MAX_CONTENT_LENGTH"] = 64 * 1024
    app.config["SEND_FILE_MAX_AGE_DEFAULT"] = 86400
