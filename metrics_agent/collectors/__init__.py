"""
数据采集器模块

包含 CPU、内存（cgroup / 整机）采集器以及组合它们的采样引擎
"""

from .cpu import cpu_utilization, read_cpu_percent_per_core
from .memory import CgroupMemory, read_cgroup_memory, read_host_memory
from .sampler import (
    MeasurementEngine,
    RawSample,
    create_measurement_engine,
    measurement_from_raw,
)

__all__ = [
    "cpu_utilization",
    "read_cpu_percent_per_core",
    "CgroupMemory",
    "read_cgroup_memory",
    "read_host_memory",
    "MeasurementEngine",
    "RawSample",
    "create_measurement_engine",
    "measurement_from_raw",
]
