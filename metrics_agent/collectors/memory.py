"""
内存采集器

优先读取容器 cgroup 的内存用量与限制（Fargate 等容器场景），
读不到时回退到整机内存（psutil）。
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import psutil

logger = logging.getLogger(__name__)

DEFAULT_CGROUP_ROOT = "/sys/fs/cgroup"

# cgroups v1 未设置限制时 hierarchical_memory_limit 是一个接近 2^63 的值
CGROUP_V1_NO_LIMIT = 0x7FFFFFFFFFFF0000


@dataclass
class CgroupMemory:
    """cgroup 内存计数（字节）"""
    usage_bytes: int
    limit_bytes: int
    peak_bytes: Optional[int] = None
    version: int = 1


def _read_first_line(path: Path) -> Optional[str]:
    try:
        with open(path, "r") as f:
            return f.readline().strip()
    except (OSError, ValueError):
        return None


def _read_int(path: Path) -> Optional[int]:
    line = _read_first_line(path)
    if not line:
        return None
    try:
        return int(line)
    except ValueError:
        return None


def read_cgroup_v1_limit(root: Path) -> Optional[int]:
    """
    读取 cgroups v1 的层级内存限制

    memory.stat 中的行格式:
        hierarchical_memory_limit 12345

    Returns:
        限制字节数；文件不存在或未设置限制时返回 None
    """
    try:
        with open(root / "memory" / "memory.stat", "r") as f:
            for line in f:
                if not line.startswith("hierarchical_memory_limit "):
                    continue
                value = int(line.split()[-1])
                if value >= CGROUP_V1_NO_LIMIT:
                    logger.debug(f"cgroups v1 with no memory limit: {value}")
                    return None
                return value
    except (OSError, ValueError):
        return None
    return None


def read_cgroup_v1(root: Path) -> Optional[CgroupMemory]:
    """读取 cgroups v1 内存计数，需要同时有用量和限制"""
    usage = _read_int(root / "memory" / "memory.usage_in_bytes")
    if usage is None:
        return None
    limit = read_cgroup_v1_limit(root)
    if limit is None:
        return None
    peak = _read_int(root / "memory" / "memory.max_usage_in_bytes")
    return CgroupMemory(usage_bytes=usage, limit_bytes=limit, peak_bytes=peak, version=1)


def read_cgroup_v2(root: Path) -> Optional[CgroupMemory]:
    """读取 cgroups v2 内存计数，memory.max 为 "max" 表示未设置限制"""
    usage = _read_int(root / "memory.current")
    if usage is None:
        return None
    limit = _read_int(root / "memory.max")
    if limit is None:
        return None
    peak = _read_int(root / "memory.peak")
    return CgroupMemory(usage_bytes=usage, limit_bytes=limit, peak_bytes=peak, version=2)


def read_cgroup_memory(root: Union[str, Path] = DEFAULT_CGROUP_ROOT) -> Optional[CgroupMemory]:
    """
    读取容器内存计数

    Args:
        root: cgroup 挂载点

    Returns:
        CgroupMemory；不在容器内或没有内存限制时返回 None
    """
    root = Path(root)
    memory = read_cgroup_v1(root)
    if memory is None:
        memory = read_cgroup_v2(root)
    return memory


def read_host_memory() -> Tuple[int, int]:
    """
    读取整机内存

    Returns:
        (已使用字节数, 总字节数)，读取失败时返回 (0, 0)
    """
    try:
        vm = psutil.virtual_memory()
        return int(vm.used), int(vm.total)
    except (OSError, RuntimeError, psutil.Error) as e:
        logger.debug(f"Failed to read host memory: {e}")
        return 0, 0


def utilization_ratio(used: Optional[float], total: Optional[float]) -> float:
    """used / total，限制在 [0, 1]；除零或 NaN 时返回 0.0"""
    if used is None or not total:
        return 0.0
    value = float(used) / float(total)
    if math.isnan(value):
        return 0.0
    return min(max(value, 0.0), 1.0)


def describe_memory(root: Union[str, Path] = DEFAULT_CGROUP_ROOT) -> str:
    """返回内存来源的诊断信息（启动时写日志）"""
    used, total = read_host_memory()
    lines = [f"psutil: used memory {used}, system memory {total}"]

    root = Path(root)
    v1_limit = read_cgroup_v1_limit(root)
    if v1_limit is not None:
        lines.append(f"cgroups v1: limit {v1_limit}")
    v2 = read_cgroup_v2(root)
    if v2 is not None:
        lines.append(f"cgroups v2: usage {v2.usage_bytes}, limit {v2.limit_bytes}")
    return "; ".join(lines)
