"""
发布器接口

采集到的聚合指标通过 MetricPublisher 发送出去（CloudWatch 或控制台）
"""

from abc import ABC, abstractmethod

from metrics_agent.models import Measurement


class PublisherInitError(Exception):
    """发布器无法初始化（如无法解析 AWS 区域或凭证）"""


class MetricPublisher(ABC):
    """
    指标发布器基类

    send 在同一时刻只会被发布任务调用一次（由锁保证），
    失败时直接抛出异常，由发布任务记录日志并继续处理下一条。
    """

    @abstractmethod
    async def send(self, measurement: Measurement) -> None:
        """发送一条聚合指标"""
