"""
任务间的有界传递队列

基于 asyncio.Queue，增加“关闭”语义：
- 消费方停止后关闭队列，生产方 send 时得到 ChannelClosedError
- 队列满时 send 阻塞（背压），关闭会唤醒阻塞的发送方
"""

import asyncio
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ChannelClosedError(Exception):
    """向已关闭的队列发送消息"""


class Channel(Generic[T]):
    """有界、先进先出、单消费者的消息队列"""

    def __init__(self, maxsize: int = 4, name: str = "channel"):
        if maxsize < 1:
            raise ValueError("Channel capacity must be at least 1")
        self.name = name
        self._queue: "asyncio.Queue[T]" = asyncio.Queue(maxsize=maxsize)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self):
        """关闭队列（可重复调用）"""
        self._closed.set()

    async def send(self, message: T):
        """
        发送消息，队列满时等待

        Raises:
            ChannelClosedError: 队列已关闭，或等待期间被关闭
        """
        if self.closed:
            raise ChannelClosedError(f"{self.name} is closed")

        try:
            self._queue.put_nowait(message)
            return
        except asyncio.QueueFull:
            pass

        put_task = asyncio.ensure_future(self._queue.put(message))
        closed_task = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait(
                {put_task, closed_task},
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            closed_task.cancel()
            if not put_task.done():
                put_task.cancel()

        if put_task.done() and not put_task.cancelled():
            return
        raise ChannelClosedError(f"{self.name} closed while sending")

    async def receive(self) -> Optional[T]:
        """
        接收下一条消息，队列为空时等待

        Returns:
            消息；队列已关闭且无剩余消息时返回 None
        """
        while True:
            try:
                return self._queue.get_nowait()
            except asyncio.QueueEmpty:
                if self.closed:
                    return None

            get_task = asyncio.ensure_future(self._queue.get())
            closed_task = asyncio.ensure_future(self._closed.wait())
            try:
                await asyncio.wait(
                    {get_task, closed_task},
                    return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                closed_task.cancel()
                if not get_task.done():
                    get_task.cancel()

            if get_task.done() and not get_task.cancelled():
                return get_task.result()

    def try_receive(self) -> Optional[T]:
        """非阻塞接收，没有待处理消息时返回 None"""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def qsize(self) -> int:
        return self._queue.qsize()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Channel {self.name} {state} size={self.qsize()}>"


__all__ = ["Channel", "ChannelClosedError"]
