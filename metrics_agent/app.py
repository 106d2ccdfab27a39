"""
采集 / 聚合 / 发布流水线

启动三个并发任务：
1. 采集任务：每 0.9s 采样一次，收到聚合请求时聚合并转发
2. 心跳任务：每个上报周期发送一次聚合请求
3. 发布任务：把聚合结果交给发布器

停机时由 ShutdownCoordinator 按顺序：最后一次聚合 -> 停止采集 -> 停止发布。
"""

import asyncio
import logging
import signal
from enum import Enum
from typing import Iterable, List, Optional

from .aggregator import aggregate
from .channel import Channel, ChannelClosedError
from .collectors import MeasurementEngine, create_measurement_engine
from .config import AgentConfig
from .models import CollectorMessage, Measurement, PublisherMessage, PublisherMessageKind
from .publishers import MetricPublisher, create_publisher

logger = logging.getLogger(__name__)

# 采样间隔（秒）
MEASUREMENT_PERIOD = 0.9


async def run_collector(
    publisher_channel: Channel,
    control_channel: Channel,
    engine: Optional[MeasurementEngine] = None,
    interval: float = MEASUREMENT_PERIOD,
):
    """
    运行采集循环

    每个 tick 采样一次并放入缓冲区，然后非阻塞地检查一条控制消息：
    - AGGREGATION：聚合缓冲区，有结果则清空缓冲区并转发给发布任务
    - QUIT：立即退出，未聚合的采样丢弃

    Args:
        publisher_channel: 发往发布任务的队列
        control_channel: 本任务的控制消息队列，退出时关闭
        engine: 采样引擎，默认新建（只属于本任务）
        interval: 采样间隔（秒）
    """
    if engine is None:
        engine = create_measurement_engine()

    series: List[Measurement] = []

    try:
        while True:
            logger.debug("Metric tick")
            series.append(engine.sample())

            message = control_channel.try_receive()
            if message is CollectorMessage.AGGREGATION:
                aggregated = aggregate(series)
                if aggregated is not None:
                    series.clear()
                    try:
                        await publisher_channel.send(PublisherMessage.metric(aggregated))
                    except ChannelClosedError as e:
                        logger.error(f"Send to metric channel error: {e}")
                        break
            elif message is CollectorMessage.QUIT:
                logger.info("Requested to quit")
                break

            await asyncio.sleep(interval)
    finally:
        control_channel.close()

    logger.info("Collector finished")


async def run_heartbeat(control_channel: Channel, period: float):
    """
    运行心跳任务

    每隔 period 秒请求一次聚合。采集任务已停止时只记录日志，
    本任务一直运行到进程退出（被取消）。
    """
    logger.info(f"Starting aggregation heartbeat (period={period}s)")

    while True:
        await asyncio.sleep(period)
        try:
            await control_channel.send(CollectorMessage.AGGREGATION)
        except ChannelClosedError as e:
            logger.error(f"Cannot send Aggregation message to collector: {e}")


async def run_publisher(
    channel: Channel,
    publisher: MetricPublisher,
    lock: Optional[asyncio.Lock] = None,
):
    """
    运行发布循环

    单条发送失败只记录日志，不影响后续消息。
    收到 QUIT 后退出，排在 QUIT 之后的消息不再处理。
    """
    if lock is None:
        lock = asyncio.Lock()

    try:
        while True:
            message = await channel.receive()
            if message is None:
                logger.warning("Metric channel closed")
                break

            if message.kind is PublisherMessageKind.QUIT:
                logger.info("Exiting receiver")
                break

            logger.debug(f"Received {message.measurement}")
            async with lock:
                try:
                    await publisher.send(message.measurement)
                except Exception as e:
                    logger.error(f"Failed to send metrics: {e}")
    finally:
        channel.close()

    logger.info("Publisher finished")


class ShutdownState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"
    DONE = "done"


class ShutdownCoordinator:
    """
    停机协调器

    等待第一个停机条件（SIGINT / SIGTERM / request_shutdown()），然后依次：
    1. 请求采集任务做最后一次聚合
    2. 请求采集任务退出并等待其结束
    3. 请求发布任务退出并等待其结束
    """

    def __init__(
        self,
        collector_channel: Channel,
        publisher_channel: Channel,
        collector_task: "asyncio.Task",
        publisher_task: "asyncio.Task",
        signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM),
    ):
        self.collector_channel = collector_channel
        self.publisher_channel = publisher_channel
        self.collector_task = collector_task
        self.publisher_task = publisher_task
        self.signals = tuple(signals)
        self.state = ShutdownState.IDLE
        self._requested = asyncio.Event()
        self._installed: List[int] = []

    def request_shutdown(self):
        """内部停机请求（与收到信号等价）"""
        self._requested.set()

    def _on_signal(self, signum: int):
        logger.info(f"Received signal {signal.Signals(signum).name}")
        self._requested.set()

    def install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in self.signals:
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
                self._installed.append(signum)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.warning(f"Failed to set up handler for signal {signum}: {e}")

    def remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in self._installed:
            loop.remove_signal_handler(signum)
        self._installed.clear()

    async def _send_to_collector(self, message: CollectorMessage):
        try:
            await self.collector_channel.send(message)
        except ChannelClosedError:
            logger.warning(f"Collector already stopped, cannot send {message.value}")

    async def _join(self, task: "asyncio.Task", name: str) -> bool:
        await asyncio.wait({task})
        if task.cancelled():
            logger.warning(f"{name} task was cancelled")
            return False
        error = task.exception()
        if error is not None:
            logger.error(f"{name} task failed: {error}", exc_info=error)
            return False
        return True

    async def drain(self) -> bool:
        """按顺序停止采集和发布任务，两个任务都正常结束时返回 True"""
        self.state = ShutdownState.DRAINING

        logger.info("Aggregate last time")
        await self._send_to_collector(CollectorMessage.AGGREGATION)
        await self._send_to_collector(CollectorMessage.QUIT)
        collector_ok = await self._join(self.collector_task, "Collector")

        logger.info("Wait for publisher task completion...")
        try:
            await self.publisher_channel.send(PublisherMessage.quit())
        except ChannelClosedError:
            logger.warning("Publisher already stopped")
        publisher_ok = await self._join(self.publisher_task, "Publisher")

        self.state = ShutdownState.DONE
        logger.info("All tasks completed")
        return collector_ok and publisher_ok

    async def run(self) -> bool:
        """等待停机条件，然后执行停机流程"""
        self.install_signal_handlers()
        try:
            await self._requested.wait()
            logger.info("Got terminate condition")
            # 停机过程中重复收到的信号不再打断流程
            return await self.drain()
        finally:
            self.remove_signal_handlers()


async def main_runner(
    config: AgentConfig,
    dryrun: bool = False,
    publisher: Optional[MetricPublisher] = None,
    shutdown_request: Optional[asyncio.Event] = None,
    signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM),
) -> bool:
    """
    启动所有任务并等待停机

    Args:
        config: Agent 配置
        dryrun: 使用控制台发布器
        publisher: 指定发布器（默认按 dryrun 创建）
        shutdown_request: 额外的停机条件，被 set 时开始停机
        signals: 触发停机的信号

    Returns:
        两个任务都正常结束时返回 True

    Raises:
        PublisherInitError: 发布器无法初始化（此时不会启动任何任务）
    """
    if publisher is None:
        publisher = create_publisher(config.cloudwatch, dryrun)

    queue_size = config.publish.queue_size
    metric_channel: Channel = Channel(maxsize=queue_size, name="metric channel")
    control_channel: Channel = Channel(maxsize=queue_size, name="aggregation channel")

    engine = create_measurement_engine(config.sampling.cgroup_root)
    logger.info(engine.describe_memory())

    collector_task = asyncio.create_task(
        run_collector(metric_channel, control_channel, engine, config.sampling.interval),
        name="collector",
    )
    heartbeat_task = asyncio.create_task(
        run_heartbeat(control_channel, config.publish.period),
        name="heartbeat",
    )
    publisher_task = asyncio.create_task(
        run_publisher(metric_channel, publisher, asyncio.Lock()),
        name="publisher",
    )
    logger.info("Started all tasks")

    coordinator = ShutdownCoordinator(
        control_channel,
        metric_channel,
        collector_task,
        publisher_task,
        signals=signals,
    )

    forward_task = None
    if shutdown_request is not None:
        async def _forward():
            await shutdown_request.wait()
            coordinator.request_shutdown()

        forward_task = asyncio.create_task(_forward(), name="shutdown-request")

    try:
        return await coordinator.run()
    finally:
        heartbeat_task.cancel()
        if forward_task is not None:
            forward_task.cancel()
        await asyncio.gather(
            heartbeat_task,
            *([forward_task] if forward_task is not None else []),
            return_exceptions=True,
        )
