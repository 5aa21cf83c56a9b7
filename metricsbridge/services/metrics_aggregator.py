"""Per-request metrics snapshot assembly."""

import copy
import math
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from metricsbridge.services.system_metrics import get_storage_metrics

UNAVAILABLE = "Data unavailable"
MS_PER_TICK = 50


@dataclass(frozen=True)
class MetricsSnapshot:
    """Immutable point-in-time metrics view."""
    values: Mapping[str, Any]

    def __getitem__(self, key):
        return self.values[key]

    def __contains__(self, key):
        return key in self.values

    def to_dict(self):
        return copy.deepcopy(dict(self.values))


def _rounded(value, digits=2):
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return UNAVAILABLE
    return round(value, digits)


def _or_unavailable(value):
    return UNAVAILABLE if value is None else value


def _player_payload(player):
    return {
        "name": player.name,
        "ping": _or_unavailable(player.ping_ms),
        "location": {
            "x": _or_unavailable(player.x),
            "y": _or_unavailable(player.y),
            "z": _or_unavailable(player.z),
            "dimension": _or_unavailable(player.dimension),
        },
    }


class MetricsAggregator:
    """Combine sampler output, host queries and disk probes.

    Every host query is independent: a failure or a ``None`` answer marks
    only its own fields as unavailable. Nothing is cached or retried.
    """

    def __init__(self, sampler, host_supplier, *, world_dir, disk_path=".", log_exception=None, clock=time.time):
        self.sampler = sampler
        self.host_supplier = host_supplier
        self.world_dir = world_dir
        self.disk_path = disk_path
        self._log_exception = log_exception or (lambda _context, _exc: None)
        self._clock = clock

    def _query(self, context, fn):
        try:
            return fn()
        except Exception as exc:
            self._log_exception(f"metrics/{context}", exc)
            return None

    def snapshot(self):
        host = self.host_supplier()
        root = {}
        self._add_tick_metrics(root)
        self._add_memory_metrics(root)
        self._add_player_metrics(root, self._query("players", host.get_players))
        self._add_world_metrics(root, self._query("world", host.get_world_info))
        root.update(self._query("storage", lambda: get_storage_metrics(self.world_dir, self.disk_path, UNAVAILABLE)) or {
            "world_size_mb": UNAVAILABLE,
            "disk_free_gb": UNAVAILABLE,
            "disk_total_gb": UNAVAILABLE,
            "disk_usage_percent": UNAVAILABLE,
        })
        self._add_entity_metrics(root, self._query("entities", host.get_entity_counts))
        self._add_mod_metrics(root, self._query("mods", host.get_mods))
        root["timestamp"] = int(self._clock() * 1000)
        return MetricsSnapshot(MappingProxyType(root))

    def _add_tick_metrics(self, root):
        root["tps"] = _rounded(self.sampler.tps())
        root["tick_time_ms"] = _rounded(self.sampler.avg_tick_ms())
        root["cpu_usage_percent"] = _rounded(self.sampler.cpu_process_load())

    def _add_memory_metrics(self, root):
        mem = self._query("memory", self.sampler.memory)
        if mem is None or mem.total <= 0:
            root["ram_usage_mb"] = UNAVAILABLE
            root["ram_total_mb"] = UNAVAILABLE
            root["ram_usage_percent"] = UNAVAILABLE
            return
        root["ram_usage_mb"] = round(mem.used / (1024.0 * 1024.0))
        root["ram_total_mb"] = round(mem.total / (1024.0 * 1024.0))
        root["ram_usage_percent"] = round(mem.used / mem.total * 100.0)

    def _add_player_metrics(self, root, players):
        if players is None:
            root["player_count"] = UNAVAILABLE
            root["network_latency_ms"] = UNAVAILABLE
            root["players"] = UNAVAILABLE
            return
        root["player_count"] = len(players)
        pings = [player.ping_ms for player in players if player.ping_ms is not None]
        root["network_latency_ms"] = round(sum(pings) / len(pings)) if pings else UNAVAILABLE
        root["players"] = [_player_payload(player) for player in players]

    def _add_world_metrics(self, root, world):
        if world is None:
            for key in ("server_uptime_ms", "minecraft_version", "world_time", "chunks_loaded"):
                root[key] = UNAVAILABLE
            return
        root["server_uptime_ms"] = world.uptime_ticks * MS_PER_TICK if world.uptime_ticks is not None else UNAVAILABLE
        root["minecraft_version"] = _or_unavailable(world.version)
        root["world_time"] = _or_unavailable(world.time_of_day)
        root["chunks_loaded"] = _or_unavailable(world.chunks_loaded)

    def _add_entity_metrics(self, root, counts_by_world):
        if counts_by_world is None:
            root["total_entities"] = UNAVAILABLE
            root["entity_counts_by_world"] = UNAVAILABLE
            root["entity_counts_summary"] = UNAVAILABLE
            return
        summary = {}
        total = 0
        for world_counts in counts_by_world.values():
            for entity_type, count in world_counts.items():
                summary[entity_type] = summary.get(entity_type, 0) + count
                total += count
        root["total_entities"] = total
        root["entity_counts_by_world"] = {world: dict(counts) for world, counts in counts_by_world.items()}
        root["entity_counts_summary"] = summary

    def _add_mod_metrics(self, root, mods):
        if mods is None:
            root["mod_status"] = UNAVAILABLE
            return
        loaded = [{"id": mod.id, "name": mod.name, "version": mod.version} for mod in mods]
        root["mod_status"] = {"loaded_mods": loaded, "mod_count": len(loaded)}
