"""
CPU 采集器

通过 psutil 读取每个逻辑核的使用率，取平均值
"""

import logging
import math
from typing import List, Sequence

import psutil

logger = logging.getLogger(__name__)


def read_cpu_percent_per_core() -> List[float]:
    """
    读取每个逻辑核自上次调用以来的使用率

    psutil 以上一次调用为基准计算 delta，首次调用的结果没有意义，
    因此 MeasurementEngine 创建时会先调用一次。

    Returns:
        0~100 的浮点数列表，读取失败时返回空列表
    """
    try:
        return list(psutil.cpu_percent(interval=None, percpu=True))
    except (OSError, RuntimeError, psutil.Error) as e:
        logger.debug(f"Failed to read per-core CPU usage: {e}")
        return []


def cpu_utilization(per_core: Sequence[float]) -> float:
    """
    计算 CPU 使用率

    Args:
        per_core: 每个核的使用率百分比

    Returns:
        所有核平均使用率 / 100，限制在 [0, 1]；无数据或 NaN 时返回 0.0
    """
    if not per_core:
        return 0.0

    value = sum(per_core) / len(per_core) / 100.0
    if math.isnan(value):
        return 0.0
    return min(max(value, 0.0), 1.0)
