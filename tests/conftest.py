"""
测试公共 fixture 与假对象
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import pytest

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from metrics_agent.models import Measurement
from metrics_agent.publishers import MetricPublisher

BASE_TS = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_measurement(cpu=0.5, mem=0.5, max_mem=None, seconds=0, count=1) -> Measurement:
    return Measurement(
        timestamp=BASE_TS + timedelta(seconds=seconds),
        cpu_utilization=cpu,
        mem_utilization=mem,
        max_mem_utilization=mem if max_mem is None else max_mem,
        sample_count=count,
    )


class FakeEngine:
    """按调用次数生成采样的假引擎"""

    def __init__(self):
        self.calls = 0

    def sample(self) -> Measurement:
        self.calls += 1
        value = (self.calls % 10) / 10
        return make_measurement(cpu=value, mem=value, seconds=self.calls)

    def describe_memory(self) -> str:
        return "fake engine"

    async def wait_for_calls(self, count: int, timeout: float = 5.0):
        async def _wait():
            while self.calls < count:
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_wait(), timeout)


class FakePublisher(MetricPublisher):
    """记录收到的指标"""

    def __init__(self):
        self.measurements: List[Measurement] = []

    async def send(self, measurement: Measurement) -> None:
        self.measurements.append(measurement)


class FailurePublisher(MetricPublisher):
    """每第二次发送失败"""

    def __init__(self):
        self.counter = 0
        self.failures = 0
        self.measurements: List[Measurement] = []

    async def send(self, measurement: Measurement) -> None:
        self.counter += 1
        if self.counter % 2 == 0:
            self.failures += 1
            raise RuntimeError(f"send #{self.counter} failed")
        self.measurements.append(measurement)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def fake_publisher():
    return FakePublisher()


@pytest.fixture
def failure_publisher():
    return FailurePublisher()
