"""Disk probes for the world directory and the server's filesystem."""

import os
import shutil
from pathlib import Path

MB = 1024 * 1024
GB = 1024 * 1024 * 1024


def get_world_size_bytes(world_dir):
    """Return the summed size of regular files under ``world_dir``, or None."""
    world_dir = Path(world_dir)
    if not world_dir.exists() or not world_dir.is_dir():
        return None
    total = 0
    for root, _, files in os.walk(world_dir):
        for file_name in files:
            try:
                total += (Path(root) / file_name).stat().st_size
            except OSError:
                continue
    return total


def get_disk_usage(path="."):
    """Return ``(total, free)`` bytes for the filesystem holding ``path``, or None."""
    try:
        usage = shutil.disk_usage(path)
    except OSError:
        return None
    if usage.total <= 0:
        return None
    return usage.total, usage.free


def get_storage_metrics(world_dir, disk_path=".", unavailable="Data unavailable"):
    """Return world size and disk fields, each degraded independently."""
    metrics = {}
    world_bytes = get_world_size_bytes(world_dir)
    metrics["world_size_mb"] = round(world_bytes / MB) if world_bytes is not None else unavailable

    disk = get_disk_usage(disk_path)
    if disk is None:
        metrics["disk_free_gb"] = unavailable
        metrics["disk_total_gb"] = unavailable
        metrics["disk_usage_percent"] = unavailable
        return metrics
    total, free = disk
    metrics["disk_free_gb"] = round(free / GB)
    metrics["disk_total_gb"] = round(total / GB)
    metrics["disk_usage_percent"] = round((total - free) / total * 100.0)
    return metrics
