"""Host game-server collaborator interface and value types."""

from dataclasses import dataclass, field
from typing import Optional


class HostUnavailableError(RuntimeError):
    """Raised when the host cannot serve a command right now."""


@dataclass(frozen=True)
class PlayerInfo:
    name: str
    ping_ms: Optional[int]
    x: Optional[float]
    y: Optional[float]
    z: Optional[float]
    dimension: Optional[str]


@dataclass(frozen=True)
class WorldInfo:
    """Overworld state; any field may be None when the host cannot report it."""
    time_of_day: Optional[int] = None
    chunks_loaded: Optional[int] = None
    uptime_ticks: Optional[int] = None
    version: Optional[str] = None


@dataclass(frozen=True)
class ModInfo:
    id: str
    name: str
    version: str


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one dispatched console command; ``result_code > 0`` is success."""
    result_code: int
    output: str = ""
    extra: dict = field(default_factory=dict)

    @property
    def success(self):
        return self.result_code > 0


class HostServer:
    """Narrow view of the host server used by the bridge.

    Query methods return ``None`` when the information is unavailable.
    Command methods raise ``HostUnavailableError`` when no server is
    attached. Subclasses override what their host can provide.
    """

    def get_players(self):
        return None

    def get_world_info(self):
        return None

    def get_entity_counts(self):
        """Return ``{world_id: {entity_type: count}}`` or None."""
        return None

    def get_mods(self):
        return None

    def execute_command(self, command):
        raise HostUnavailableError("Server not available")

    def teleport_player(self, name, x, y, z, world):
        raise HostUnavailableError("Server not available")

    def find_world_by_identifier(self, identifier):
        return None

    def is_player_online(self, name):
        players = self.get_players() or []
        wanted = (name or "").strip().lower()
        return any(player.name.lower() == wanted for player in players)


class NullHost(HostServer):
    """Host placeholder used before a server is attached."""
