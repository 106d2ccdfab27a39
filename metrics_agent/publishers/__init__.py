"""
指标发布器

- ConsolePublisher：打印到控制台（--dryrun）
- CloudwatchPublisher：发送到 CloudWatch
"""

import logging

from metrics_agent.config import CloudwatchConfig
from .base import MetricPublisher, PublisherInitError
from .cloudwatch import CloudwatchPublisher
from .console import ConsolePublisher

logger = logging.getLogger(__name__)


def create_publisher(config: CloudwatchConfig, dryrun: bool = False) -> MetricPublisher:
    """
    根据启动参数选择发布器（启动时选择一次）

    Raises:
        PublisherInitError: CloudWatch 客户端无法初始化
    """
    if dryrun:
        logger.info("Dry run: metrics are printed to console")
        return ConsolePublisher()

    publisher = CloudwatchPublisher(config)
    logger.info(
        f"Publishing to CloudWatch namespace={config.namespace} "
        f"service_name={config.service_name}"
    )
    return publisher


__all__ = [
    "MetricPublisher",
    "PublisherInitError",
    "CloudwatchPublisher",
    "ConsolePublisher",
    "create_publisher",
]
