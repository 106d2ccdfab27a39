"""
CloudWatch 发布器

每个聚合结果调用一次 PutMetricData，写入三个指标：
CPUUtilization / MemoryUtilization / MaxMemoryUtilization，
维度 ServiceName=<service_name>。
"""

import asyncio
import logging
from typing import Any, Dict, List

import boto3
from botocore.exceptions import BotoCoreError

from metrics_agent.config import CloudwatchConfig
from metrics_agent.models import Measurement
from metrics_agent.publishers.base import MetricPublisher, PublisherInitError

logger = logging.getLogger(__name__)


def create_client(config: CloudwatchConfig):
    """
    创建 CloudWatch 客户端

    区域和凭证走 boto3 默认解析链（环境变量、配置文件、实例/任务角色）

    Raises:
        PublisherInitError: 无法解析区域或凭证
    """
    try:
        session = boto3.session.Session(region_name=config.region)
        if session.region_name is None:
            raise PublisherInitError("Cannot resolve AWS region for CloudWatch")
        if session.get_credentials() is None:
            raise PublisherInitError("Cannot resolve AWS credentials for CloudWatch")
        return session.client("cloudwatch")
    except BotoCoreError as e:
        raise PublisherInitError(f"Cannot create CloudWatch client: {e}") from e


class CloudwatchPublisher(MetricPublisher):
    """把指标发送到 CloudWatch"""

    def __init__(self, config: CloudwatchConfig, client=None):
        self.config = config
        self.client = client if client is not None else create_client(config)

    def build_metric_data(self, measurement: Measurement) -> List[Dict[str, Any]]:
        dimensions = [{"Name": "ServiceName", "Value": self.config.service_name}]
        values = (
            ("CPUUtilization", measurement.cpu_utilization),
            ("MemoryUtilization", measurement.mem_utilization),
            ("MaxMemoryUtilization", measurement.max_mem_utilization),
        )
        return [
            {
                "MetricName": name,
                "Dimensions": dimensions,
                "Timestamp": measurement.timestamp,
                "Value": value,
                "Unit": "Percent",
            }
            for name, value in values
        ]

    async def send(self, measurement: Measurement) -> None:
        logger.info(f"Sending measurement to CloudWatch {measurement}")
        # boto3 是同步客户端，放到线程里执行
        await asyncio.to_thread(
            self.client.put_metric_data,
            Namespace=self.config.namespace,
            MetricData=self.build_metric_data(measurement),
        )
