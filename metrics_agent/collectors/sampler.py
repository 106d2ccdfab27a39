"""
采样引擎

把 CPU / 内存采集器组合成一次 Measurement 采样。
MeasurementEngine 持有 psutil 的 CPU 计数基准，只由采集任务使用。
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import NamedTuple, Optional, Sequence, Union

from metrics_agent.collectors.cpu import cpu_utilization, read_cpu_percent_per_core
from metrics_agent.collectors.memory import (
    DEFAULT_CGROUP_ROOT,
    describe_memory,
    read_cgroup_memory,
    read_host_memory,
    utilization_ratio,
)
from metrics_agent.models import Measurement, utc_now

logger = logging.getLogger(__name__)


class RawSample(NamedTuple):
    """一次原始读数，只包含数值"""
    cpu_percent_per_core: Sequence[float]
    used_memory_bytes: int
    total_memory_bytes: int
    cgroup_usage_bytes: Optional[int] = None
    cgroup_peak_bytes: Optional[int] = None
    cgroup_limit_bytes: Optional[int] = None


def measurement_from_raw(raw: RawSample, timestamp: Optional[datetime] = None) -> Measurement:
    """
    由原始读数计算一次采样

    内存优先使用 cgroup（用量和限制都存在时），否则使用整机 used / total。
    峰值取 cgroup 峰值 / 限制，没有峰值时等于当前使用率。

    Args:
        raw: 原始读数
        timestamp: 采样时间，默认当前 UTC 时间

    Returns:
        sample_count 为 1 的 Measurement
    """
    cpu = cpu_utilization(raw.cpu_percent_per_core)

    if raw.cgroup_usage_bytes is not None and raw.cgroup_limit_bytes is not None:
        mem = utilization_ratio(raw.cgroup_usage_bytes, raw.cgroup_limit_bytes)
        if raw.cgroup_peak_bytes is not None:
            max_mem = max(utilization_ratio(raw.cgroup_peak_bytes, raw.cgroup_limit_bytes), mem)
        else:
            max_mem = mem
    else:
        mem = utilization_ratio(raw.used_memory_bytes, raw.total_memory_bytes)
        max_mem = mem

    return Measurement(
        timestamp=timestamp or utc_now(),
        cpu_utilization=cpu,
        mem_utilization=mem,
        max_mem_utilization=max_mem,
        sample_count=1,
    )


class MeasurementEngine:
    """采样上下文"""

    def __init__(self, cgroup_root: Union[str, Path] = DEFAULT_CGROUP_ROOT):
        self.cgroup_root = Path(cgroup_root)
        # 建立 CPU 计数基准，下一次读取才有意义
        read_cpu_percent_per_core()

    def sample_raw(self) -> RawSample:
        per_core = read_cpu_percent_per_core()
        used, total = read_host_memory()

        cgroup = read_cgroup_memory(self.cgroup_root)
        if cgroup is not None:
            logger.debug(
                f"Got cgroups v{cgroup.version} memory usage {cgroup.usage_bytes}, "
                f"max {cgroup.peak_bytes} and limit {cgroup.limit_bytes}"
            )
            return RawSample(
                cpu_percent_per_core=per_core,
                used_memory_bytes=used,
                total_memory_bytes=total,
                cgroup_usage_bytes=cgroup.usage_bytes,
                cgroup_peak_bytes=cgroup.peak_bytes,
                cgroup_limit_bytes=cgroup.limit_bytes,
            )

        return RawSample(
            cpu_percent_per_core=per_core,
            used_memory_bytes=used,
            total_memory_bytes=total,
        )

    def sample(self) -> Measurement:
        """采集一次，不会抛出异常"""
        return measurement_from_raw(self.sample_raw())

    def describe_memory(self) -> str:
        return describe_memory(self.cgroup_root)


def create_measurement_engine(cgroup_root: Union[str, Path] = DEFAULT_CGROUP_ROOT) -> MeasurementEngine:
    return MeasurementEngine(cgroup_root)
