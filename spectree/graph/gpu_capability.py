"""GPU capability detection for the power iteration matvec.

Detects a CUDA device through CuPy, which provides the sparse matrix-vector
product used by the GPU backend.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

USE_GPU_ENV = "SPECTREE_USE_GPU"
FORCE_CPU_ENV = "SPECTREE_FORCE_CPU"


@dataclass
class GpuCapability:
    """Container for GPU hardware and software availability."""

    cupy_available: bool
    device_count: int
    device_name: Optional[str]
    enabled: bool  # GPU use is opt-in

    @property
    def can_use_gpu(self) -> bool:
        return self.enabled and self.cupy_available and self.device_count > 0

    def __str__(self) -> str:
        if self.can_use_gpu:
            return f"GPU enabled ({self.device_name}, {self.device_count} device(s))"
        if self.enabled and not self.cupy_available:
            return "GPU requested but CuPy unavailable"
        if self.enabled:
            return "GPU requested but no CUDA device found"
        return "GPU disabled (CPU mode)"


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in ("true", "1")


def _probe_cupy() -> tuple[bool, int, Optional[str]]:
    """Return (cupy_importable, device_count, first_device_name)."""
    try:
        import cupy
    except ImportError:
        return False, 0, None

    try:
        count = cupy.cuda.runtime.getDeviceCount()
        name = None
        if count:
            props = cupy.cuda.runtime.getDeviceProperties(0)
            name = props.get("name", b"").decode(errors="replace") or None
        return True, count, name
    except Exception as exc:
        logger.debug("CUDA device query failed: %s", exc)
        return True, 0, None


def detect_gpu_capability(allow_gpu: bool = False) -> GpuCapability:
    """Detect whether the GPU matvec backend can be used.

    GPU use is enabled by ``allow_gpu`` or ``SPECTREE_USE_GPU=true`` and vetoed
    by ``SPECTREE_FORCE_CPU=true``.
    """
    enabled = (allow_gpu or _env_flag(USE_GPU_ENV)) and not _env_flag(FORCE_CPU_ENV)
    if not enabled:
        return GpuCapability(cupy_available=False, device_count=0, device_name=None, enabled=False)

    cupy_available, device_count, device_name = _probe_cupy()
    capability = GpuCapability(
        cupy_available=cupy_available,
        device_count=device_count,
        device_name=device_name,
        enabled=True,
    )
    if capability.can_use_gpu:
        logger.info("%s", capability)
    else:
        logger.warning("%s; using CPU matvec", capability)
    return capability


_gpu_capability: Optional[GpuCapability] = None
_gpu_capability_allowed: Optional[bool] = None


def get_gpu_capability(allow_gpu: bool = False, refresh: bool = False) -> GpuCapability:
    """Cached :func:`detect_gpu_capability`."""
    global _gpu_capability, _gpu_capability_allowed

    if _gpu_capability is None or refresh or _gpu_capability_allowed != allow_gpu:
        _gpu_capability = detect_gpu_capability(allow_gpu=allow_gpu)
        _gpu_capability_allowed = allow_gpu
    return _gpu_capability
