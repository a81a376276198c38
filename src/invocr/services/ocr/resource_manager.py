"""
Adaptive Resource Management for OCR Processing.

Detects available system resources (RAM, CPU) and sizes the engine's
worker pool. Every concurrent pipeline run holds a few full-size RGB
rasters plus the inference buffers of the model it is running, so the
worker count is bounded by free memory as well as by CPU cores.

Resource tiers:
  - CONSTRAINED: < 2 GB available RAM → single worker
  - MODERATE:    2-6 GB available RAM → up to 4 workers
  - ABUNDANT:    > 6 GB available RAM → up to 8 workers

Memory estimates:
  - Base process overhead:     ~150 MB
  - Cached model sessions:     ~400 MB (shared by all workers)
  - Per-run rasters + tensors: ~200 MB peak (4096 px image, all stages)
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum, auto

from invocr.constants import (
    BASE_PROCESS_OVERHEAD_MB,
    MODEL_SESSIONS_OVERHEAD_MB,
    PER_WORKER_COST_MB,
    RESOURCE_TIER_CONSTRAINED_GB,
    RESOURCE_TIER_MODERATE_GB,
)

logger = logging.getLogger(__name__)


class ResourceTier(Enum):
    """System resource tier for adaptive configuration."""

    CONSTRAINED = auto()  # < 2 GB free RAM
    MODERATE = auto()  # 2-6 GB free RAM
    ABUNDANT = auto()  # > 6 GB free RAM


@dataclass(frozen=True)
class ResourceProfile:
    """Snapshot of available system resources.

    Attributes:
        available_ram_mb: Currently available RAM in MB
        total_ram_mb: Total system RAM in MB
        cpu_count: Number of logical CPU cores
        tier: Computed resource tier
    """

    available_ram_mb: int
    total_ram_mb: int
    cpu_count: int
    tier: ResourceTier


@dataclass(frozen=True)
class PipelineConfig:
    """Engine sizing derived from a resource profile.

    Attributes:
        max_workers: Concurrent pipeline runs
        tier: Tier the sizing was derived from
    """

    max_workers: int
    tier: ResourceTier


def _read_meminfo() -> tuple[int, int]:
    """Total and available RAM in MB from /proc/meminfo (Linux)."""
    try:
        with open("/proc/meminfo") as f:
            meminfo = {}
            for line in f:
                parts = line.split()
                if len(parts) >= 2:
                    meminfo[parts[0].rstrip(":")] = int(parts[1])  # kB

        total_mb = meminfo.get("MemTotal", 4 * 1024 * 1024) // 1024
        # MemAvailable includes reclaimable cache
        available_mb = (
            meminfo.get(
                "MemAvailable",
                meminfo.get("MemFree", total_mb // 2 * 1024)
                + meminfo.get("Buffers", 0)
                + meminfo.get("Cached", 0),
            )
            // 1024
        )
    except (OSError, ValueError):
        total_mb = 8192
        available_mb = total_mb // 2
    return total_mb, available_mb


def _apply_cgroup_limits(total_mb: int, available_mb: int) -> tuple[int, int]:
    """Clamp to cgroup v2 memory limits (containers, Flatpak, systemd slices)."""
    try:
        with open("/sys/fs/cgroup/memory.max") as f:
            raw = f.read().strip()
            if raw != "max":
                cgroup_limit_mb = int(raw) // (1024 * 1024)
                total_mb = min(total_mb, cgroup_limit_mb)
                available_mb = min(available_mb, cgroup_limit_mb)
    except (OSError, ValueError):
        pass
    try:
        with open("/sys/fs/cgroup/memory.current") as f:
            cgroup_used_mb = int(f.read().strip()) // (1024 * 1024)
            available_mb = min(available_mb, max(0, total_mb - cgroup_used_mb))
    except (OSError, ValueError):
        pass
    return total_mb, available_mb


def classify_tier(available_mb: int) -> ResourceTier:
    available_gb = available_mb / 1024
    if available_gb < RESOURCE_TIER_CONSTRAINED_GB:
        return ResourceTier.CONSTRAINED
    if available_gb < RESOURCE_TIER_MODERATE_GB:
        return ResourceTier.MODERATE
    return ResourceTier.ABUNDANT


def detect_resources() -> ResourceProfile:
    """Detect current system resources.

    Uses psutil if available for accurate measurement, otherwise
    /proc/meminfo. cgroup limits are applied on top of either.

    Returns:
        ResourceProfile with current system state.
    """
    cpu_count = os.cpu_count() or 4

    try:
        import psutil

        mem = psutil.virtual_memory()
        available_mb = int(mem.available / (1024 * 1024))
        total_mb = int(mem.total / (1024 * 1024))
    except ImportError:
        total_mb, available_mb = _read_meminfo()

    total_mb, available_mb = _apply_cgroup_limits(total_mb, available_mb)
    tier = classify_tier(available_mb)

    profile = ResourceProfile(
        available_ram_mb=available_mb,
        total_ram_mb=total_mb,
        cpu_count=cpu_count,
        tier=tier,
    )

    logger.info(
        f"Resource detection: {available_mb} MB available / {total_mb} MB total, "
        f"{cpu_count} CPUs → {tier.name}"
    )

    return profile


def compute_pipeline_config(profile: ResourceProfile) -> PipelineConfig:
    """Compute the worker count for the given resource profile.

    The algorithm:
    1. Reserve memory for cached sessions (400 MB) + base overhead (150 MB)
    2. Divide 70% of the remaining available RAM by the per-run cost (200 MB)
    3. Cap by CPU count, keeping one core for the inference thread pools
    4. Apply the tier cap

    Args:
        profile: Current system resource profile.

    Returns:
        PipelineConfig with the worker count.
    """
    if profile.tier == ResourceTier.CONSTRAINED:
        max_workers = 1
    else:
        usable_mb = profile.available_ram_mb - MODEL_SESSIONS_OVERHEAD_MB - BASE_PROCESS_OVERHEAD_MB
        ram_workers = max(1, int(usable_mb * 0.7 / PER_WORKER_COST_MB))
        cpu_workers = max(1, profile.cpu_count - 1)
        tier_cap = 4 if profile.tier == ResourceTier.MODERATE else 8
        max_workers = min(ram_workers, cpu_workers, tier_cap)

    config = PipelineConfig(max_workers=max_workers, tier=profile.tier)
    logger.info(f"Pipeline config: workers={max_workers} ({profile.tier.name})")
    return config
