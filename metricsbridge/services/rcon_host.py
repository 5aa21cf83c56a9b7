"""Host collaborator that drives a dedicated server through ``mcrcon``."""

import re
import shutil
import subprocess
import threading
import time

from metricsbridge.services.host import CommandResult, HostServer, HostUnavailableError, PlayerInfo, WorldInfo

KNOWN_DIMENSIONS = ("minecraft:overworld", "minecraft:the_nether", "minecraft:the_end")
RCON_CONFIG_TTL_SECONDS = 60
_LIST_RE = re.compile(r"There are\s+(\d+)\s+of a max(?: of)?\s+\d+\s+players online:?\s*(.*)", re.IGNORECASE)
_POS_RE = re.compile(r"\[\s*(-?[0-9.]+)d?,\s*(-?[0-9.]+)d?,\s*(-?[0-9.]+)d?\s*\]")
_DIMENSION_RE = re.compile(r'"([a-z0-9_.-]+:[a-z0-9_./-]+)"')
_TIME_RE = re.compile(r"The time is\s+(\d+)", re.IGNORECASE)
_TP_SUCCESS_RE = re.compile(r"^\s*Teleported\s", re.IGNORECASE)


def candidate_mcrcon_bins():
    """Return preferred list of mcrcon binary candidates."""
    candidates = []
    found = shutil.which("mcrcon")
    if found:
        candidates.append(found)
    for path in ("/usr/bin/mcrcon", "/usr/local/bin/mcrcon", "/opt/mcrcon/mcrcon"):
        if path not in candidates:
            candidates.append(path)
    return candidates


def clean_rcon_output(text):
    """Strip ANSI and section-format control codes from RCON output."""
    cleaned = text or ""
    cleaned = re.sub(r"\x1b\[[0-9;]*[A-Za-z]", "", cleaned)
    cleaned = re.sub(r"\u00a7.", "", cleaned)
    return cleaned


def parse_server_properties(text):
    values = {}
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    return values


def parse_player_names(output):
    """Parse player names from ``list`` output; None when unparseable."""
    text = clean_rcon_output(output).strip()
    match = _LIST_RE.search(text)
    if not match:
        return None
    if int(match.group(1)) == 0:
        return []
    return [name.strip() for name in match.group(2).split(",") if name.strip()]


def parse_position(output):
    match = _POS_RE.search(clean_rcon_output(output))
    if not match:
        return None
    return tuple(round(float(value), 2) for value in match.groups())


def parse_dimension(output):
    match = _DIMENSION_RE.search(clean_rcon_output(output))
    return match.group(1) if match else None


class RconHost(HostServer):
    """Query and command a running server over RCON.

    Ping, chunk, entity and mod data are not exposed by vanilla RCON and are
    reported as unavailable.
    """

    def __init__(self, server_properties, rcon_host="127.0.0.1", rcon_port=25575,
                 timeout=8, log_exception=None):
        self.server_properties = server_properties
        self.rcon_host = rcon_host
        self.default_port = rcon_port
        self.timeout = timeout
        self._log_exception = log_exception or (lambda _context, _exc: None)
        self._config_lock = threading.Lock()
        self._config_read_at = 0.0
        self._password = None
        self._port = rcon_port
        self._level_name = "world"

    def refresh_rcon_config(self):
        """Reload and cache RCON password/port settings from server.properties."""
        now = time.time()
        with self._config_lock:
            if now - self._config_read_at < RCON_CONFIG_TTL_SECONDS:
                return self._password, self._port
            self._config_read_at = now
            try:
                kv = parse_server_properties(self.server_properties.read_text(encoding="utf-8", errors="ignore"))
            except OSError:
                kv = {}
            password = kv.get("rcon.password", "").strip()
            enabled = kv.get("enable-rcon", "true").lower() != "false"
            self._password = password if (enabled and password) else None
            port = kv.get("rcon.port", "")
            self._port = int(port) if port.isdigit() else self.default_port
            self._level_name = kv.get("level-name", "").strip() or "world"
            return self._password, self._port

    def run_mcrcon(self, command):
        """Execute an RCON command, trying compatible mcrcon argv variants."""
        password, port = self.refresh_rcon_config()
        if not password:
            raise HostUnavailableError("RCON is disabled: rcon.password not found in server.properties")

        last_result = None
        for bin_path in candidate_mcrcon_bins():
            candidates = [
                [bin_path, "-H", self.rcon_host, "-P", str(port), "-p", password, command],
                [bin_path, "-H", self.rcon_host, "-p", password, command],
            ]
            for argv in candidates:
                try:
                    result = subprocess.run(argv, capture_output=True, text=True, timeout=self.timeout)
                except (OSError, subprocess.TimeoutExpired) as exc:
                    self._log_exception("run_mcrcon_candidate", exc)
                    continue
                last_result = result
                if result.returncode == 0:
                    return result
        if last_result is not None:
            return last_result
        raise HostUnavailableError("mcrcon invocation failed")

    def _query(self, command):
        """Run a read-only probe; returns cleaned output or None."""
        try:
            result = self.run_mcrcon(command)
        except HostUnavailableError:
            return None
        if result.returncode != 0:
            return None
        return clean_rcon_output((result.stdout or "") + (result.stderr or "")).strip()

    def _player_names(self):
        output = self._query("list")
        if output is None:
            return None
        return parse_player_names(output)

    def get_players(self):
        names = self._player_names()
        if names is None:
            return None
        players = []
        for name in names:
            position = parse_position(self._query(f"data get entity {name} Pos") or "")
            dimension = parse_dimension(self._query(f"data get entity {name} Dimension") or "")
            x, y, z = position if position else (None, None, None)
            players.append(PlayerInfo(name=name, ping_ms=None, x=x, y=y, z=z, dimension=dimension))
        return players

    def is_player_online(self, name):
        wanted = (name or "").strip().lower()
        return any(candidate.lower() == wanted for candidate in (self._player_names() or []))

    def get_world_info(self):
        output = self._query("time query daytime")
        if output is None:
            return None
        match = _TIME_RE.search(output)
        return WorldInfo(time_of_day=int(match.group(1)) if match else None)

    def execute_command(self, command):
        result = self.run_mcrcon(command)
        output = clean_rcon_output((result.stdout or "") + (result.stderr or "")).strip()
        if result.returncode != 0:
            return CommandResult(0, output or "Command failed")
        return CommandResult(1, output or "Command executed successfully")

    def find_world_by_identifier(self, identifier):
        """Resolve a dimension id or a world save name to a dimension id."""
        ident = (identifier or "").strip().lower()
        if not ident:
            return None
        if ident in KNOWN_DIMENSIONS:
            return ident
        if f"minecraft:{ident}" in KNOWN_DIMENSIONS:
            return f"minecraft:{ident}"
        self.refresh_rcon_config()
        level = self._level_name.lower()
        save_names = {
            level: "minecraft:overworld",
            f"{level}_the_nether": "minecraft:the_nether",
            f"{level}_the_end": "minecraft:the_end",
        }
        return save_names.get(ident)

    def teleport_player(self, name, x, y, z, world):
        result = self.execute_command(f"execute in {world} run tp {name} {x} {y} {z}")
        return result.success and bool(_TP_SUCCESS_RE.match(result.output or ""))
