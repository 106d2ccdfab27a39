"""
控制台发布器（--dryrun 时使用）
"""

from metrics_agent.models import Measurement
from metrics_agent.publishers.base import MetricPublisher


class ConsolePublisher(MetricPublisher):
    """只把指标打印到标准输出"""

    async def send(self, measurement: Measurement) -> None:
        print(f"Sending measurement to console {measurement}", flush=True)
