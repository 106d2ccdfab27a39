"""
周期聚合

把一个上报周期内的原始采样压缩成一个 Measurement。
CPU / 内存取中位数（避免瞬时尖峰），内存峰值取最大值。
"""

import logging
from statistics import median
from typing import Optional, Sequence

from .models import Measurement

logger = logging.getLogger(__name__)


def aggregate(series: Sequence[Measurement]) -> Optional[Measurement]:
    """
    计算聚合指标

    Args:
        series: 按时间排序的采样列表（不会被修改）

    Returns:
        聚合后的 Measurement，时间戳取最后一个采样；
        列表为空时返回 None（心跳先于第一次采样到达时是正常情况）
    """
    if not series:
        return None

    last = series[-1]
    aggregated = Measurement(
        timestamp=last.timestamp,
        cpu_utilization=median(m.cpu_utilization for m in series),
        mem_utilization=median(m.mem_utilization for m in series),
        max_mem_utilization=max(m.max_mem_utilization for m in series),
        sample_count=len(series),
    )
    logger.debug(f"Aggregated {len(series)} measurements: {aggregated}")
    return aggregated
