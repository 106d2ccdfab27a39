"""
数据模型定义

包括：
- Measurement：单次采样或聚合后的指标
- 采集任务 / 发布任务之间传递的控制消息
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Measurement(BaseModel):
    """CPU / 内存使用率数据点（原始采样或聚合结果），创建后不可修改"""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now, description="采集时间（UTC）")
    cpu_utilization: float = Field(..., ge=0.0, le=1.0, description="CPU 使用率 (0-1)")
    mem_utilization: float = Field(..., ge=0.0, le=1.0, description="内存使用率 (0-1)")
    max_mem_utilization: float = Field(..., ge=0.0, le=1.0, description="内存峰值使用率 (0-1)")
    sample_count: int = Field(default=1, ge=1, description="聚合的采样个数")

    def __str__(self) -> str:
        return (
            f"Measurement {{ ts {self.timestamp.isoformat()}, "
            f"cpu {self.cpu_utilization:.3f}, mem {self.mem_utilization:.3f}, "
            f"max mem {self.max_mem_utilization:.3f}, samples {self.sample_count} }}"
        )


class CollectorMessage(str, Enum):
    """心跳 / 停机协调器 -> 采集任务"""
    AGGREGATION = "aggregation"
    QUIT = "quit"


class PublisherMessageKind(str, Enum):
    METRIC = "metric"
    QUIT = "quit"


@dataclass(frozen=True)
class PublisherMessage:
    """采集任务 / 停机协调器 -> 发布任务"""

    kind: PublisherMessageKind
    measurement: Optional[Measurement] = None

    @classmethod
    def metric(cls, measurement: Measurement) -> "PublisherMessage":
        return cls(kind=PublisherMessageKind.METRIC, measurement=measurement)

    @classmethod
    def quit(cls) -> "PublisherMessage":
        return cls(kind=PublisherMessageKind.QUIT)
