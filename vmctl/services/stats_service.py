"""
Instance Statistics Service

CPU utilisation derived from successive cumulative CPU-time readings.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from vmctl.services.hypervisor import Hypervisor


@dataclass
class CpuSample:
    cpu_time_ns: int
    timestamp: float


class CpuSampler:
    """
    Keyed cache of the last CPU-time reading per instance.

    Utilisation is the CPU-time delta over the wall-clock delta, divided by
    the vCPU count and clamped to [0, 100]. The first reading for an
    instance, and any reading lower than the previous one (the instance
    restarted), reset the cache entry and report 0.0.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._samples: Dict[str, CpuSample] = {}

    def sample(self, name: str, cpu_time_ns: int, vcpus: int) -> float:
        now = self._clock()
        with self._lock:
            previous = self._samples.get(name)
            self._samples[name] = CpuSample(cpu_time_ns=cpu_time_ns, timestamp=now)

        if previous is None or cpu_time_ns < previous.cpu_time_ns:
            return 0.0
        elapsed_ns = (now - previous.timestamp) * 1e9
        if elapsed_ns <= 0:
            return 0.0

        percent = (cpu_time_ns - previous.cpu_time_ns) * 100.0 / elapsed_ns / max(vcpus, 1)
        return min(max(percent, 0.0), 100.0)

    def forget(self, name: str) -> None:
        with self._lock:
            self._samples.pop(name, None)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._samples

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)


@dataclass
class InstanceStats:
    name: str
    state: str
    cpu_percent: float
    vcpus: int
    memory_mb: int
    max_memory_mb: int

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "state": self.state,
            "cpu_percent": round(self.cpu_percent, 2),
            "vcpus": self.vcpus,
            "memory_mb": self.memory_mb,
            "max_memory_mb": self.max_memory_mb,
        }


class StatsService:
    """Reads instance figures and feeds CPU time through a shared sampler."""

    def __init__(self, hypervisor: Hypervisor, sampler: Optional[CpuSampler] = None):
        self.hypervisor = hypervisor
        self.sampler = sampler or CpuSampler()

    def read(self, name: str) -> InstanceStats:
        """
        Raises:
            InstanceNotFoundError: If the instance does not exist
        """
        info = self.hypervisor.get_info(name)
        cpu = self.sampler.sample(name, info.cpu_time_ns, info.vcpus)
        return InstanceStats(
            name=name,
            state=info.state.label,
            cpu_percent=cpu,
            vcpus=info.vcpus,
            memory_mb=info.memory_mb,
            max_memory_mb=info.max_memory_mb,
        )
