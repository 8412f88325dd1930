"""
创建协调器 - 按会话 ID 去重的并发创建（single-flight）。

朴素的"先检查是否存在，再创建"在 await 初始化期间存在竞态：
两个并发请求都会通过存在性检查，各自构建一个执行环境，其中一个被泄漏。
本模块用"在途创建账本"解决：

    _pending: {session_id: asyncio.Task[Session]}

- 注册表命中：直接返回（刷新访问时间）
- 账本命中：等待同一个创建任务，得到同一个结果（成功的 Session 或同一个 CreationError）
- 都未命中：登记新任务，由它调用工厂构建环境，成功后插入注册表

检查注册表、检查账本、登记任务这三步之间没有 await，对事件循环而言是原子的；
创建成功时"插入注册表"和"移出账本"同样在一次同步片段里完成，
因此同一个 ID 永远不会同时出现在注册表和账本中。

构建作为独立任务运行，调用方通过 asyncio.shield 等待：
某个调用方被取消不会中断其它调用方正在等待的创建。
"""

import asyncio
from typing import Callable

from loguru import logger

from vivarium.environment.base import EnvironmentFactory
from vivarium.session.errors import CreationError, DuplicateKeyError
from vivarium.session.registry import SessionRegistry
from vivarium.session.types import REASON_DISCARDED, Session, SessionState
from vivarium.utils.helpers import now_ms


class CreationCoordinator:
    """
    Single-flight 创建协调器。

    属性:
        _registry: 会话注册表（创建成功后写入）
        _pending: 在途创建账本 {session_id: 创建任务}
        _clock: 毫秒时钟，决定 created_at_ms / last_accessed_at_ms
    """

    def __init__(self, registry: SessionRegistry, clock: Callable[[], int] = now_ms):
        self._registry = registry
        self._pending: dict[str, asyncio.Task[Session]] = {}
        self._clock = clock

    @property
    def in_flight(self) -> list[str]:
        """当前正在创建中的会话 ID。"""
        return list(self._pending)

    def is_pending(self, session_id: str) -> bool:
        return session_id in self._pending

    async def get_or_create(self, session_id: str, factory: EnvironmentFactory) -> Session:
        """
        获取或创建会话。

        对任意 ID，无论多少个并发调用方，只会调用一次 factory，
        所有调用方观察到同一个结果。

        参数:
            session_id: 会话 ID
            factory: 环境工厂，返回已初始化的 Environment

        返回:
            ACTIVE 状态的 Session

        异常:
            CreationError: 工厂（环境初始化）失败
        """
        session = self._registry.lookup(session_id)
        if session is not None:
            return session

        task = self._pending.get(session_id)
        if task is None:
            task = asyncio.create_task(
                self._create(session_id, factory),
                name=f"create-session:{session_id}",
            )
            self._pending[session_id] = task
        else:
            logger.debug(f"Joining in-flight creation for session {session_id}")

        return await asyncio.shield(task)

    async def wait_idle(self) -> None:
        """
        等待所有在途创建结束（无论成功失败）。

        等待方被取消时，创建任务本身不受影响，其它等待同一 ID 的调用方照常拿到结果。
        """
        while self._pending:
            await asyncio.gather(
                *(asyncio.shield(task) for task in self._pending.values()),
                return_exceptions=True,
            )

    async def _create(self, session_id: str, factory: EnvironmentFactory) -> Session:
        logger.info(f"Creating new session: {session_id}")
        try:
            try:
                environment = await factory()
            except Exception as e:
                logger.error(f"Failed to create session {session_id}: {e}")
                raise CreationError(session_id, str(e) or type(e).__name__) from e

            now = self._clock()
            session = Session(
                id=session_id,
                environment=environment,
                created_at_ms=now,
                last_accessed_at_ms=now,
            )
            session.transition(SessionState.ACTIVE)
            try:
                self._registry.insert(session_id, session)
            except DuplicateKeyError:
                logger.error(f"Session {session_id} registered twice; discarding the new environment")
                self._pending.pop(session_id, None)
                await session.teardown(REASON_DISCARDED, self._clock)
                raise
        finally:
            self._pending.pop(session_id, None)

        logger.info(f"Session created: {session_id}")
        return session
