"""
过期清扫服务实现 - 定期回收空闲会话。

本模块实现了周期性清扫机制：
- 按固定间隔（默认 60 秒）唤醒
- 对注册表做一次快照，计算每个会话的空闲时长（now - last_accessed_at_ms）
- 空闲时长 ≥ 超时阈值（默认 10 分钟）的会话被摘除并销毁
- 单个会话销毁失败不影响其余会话

架构设计：
- 基于 asyncio.Task 的定期循环，等待间隔时监听停止事件，stop() 不会打断正在进行的清扫
- 通过 on_expired 回调把销毁委托给外部（通常是 SessionManager）
- 先快照再逐个"条件摘除"，不需要覆盖整轮清扫的全局锁

二开提示：
- sweep_now() 方法支持手动触发，适合运维操作和测试
"""

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from loguru import logger

from vivarium.utils.helpers import now_ms

if TYPE_CHECKING:
    from vivarium.session.registry import SessionRegistry
    from vivarium.session.types import Session

# 默认清扫间隔：60 秒
DEFAULT_SWEEP_INTERVAL_S = 60

# 默认空闲超时：10 分钟
DEFAULT_IDLE_TIMEOUT_MINUTES = 10


class ExpirySweeper:
    """
    过期清扫器 - 定期摘除并销毁空闲会话。

    工作流程：
    1. 每隔 interval_s 秒触发一次清扫
    2. 对注册表做快照，挑出空闲时长达到阈值的会话
    3. 逐个原子地"再确认空闲 + 摘除"，摘除成功的交给 on_expired 销毁
    4. 返回本轮摘除的会话数
    """

    def __init__(
        self,
        registry: "SessionRegistry",
        on_expired: Callable[["Session"], Awaitable[Any]],
        idle_timeout_minutes: float = DEFAULT_IDLE_TIMEOUT_MINUTES,
        interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
        clock: Callable[[], int] = now_ms,
    ):
        """
        初始化清扫器。

        参数:
            registry: 被清扫的会话注册表
            on_expired: 销毁回调，接收已从注册表摘除的 Session
            idle_timeout_minutes: 空闲超时阈值（分钟）
            interval_s: 清扫间隔（秒）
            clock: 毫秒时钟
        """
        self.registry = registry
        self.on_expired = on_expired
        self.idle_timeout_ms = int(idle_timeout_minutes * 60 * 1000)
        self.interval_s = interval_s
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """启动后台清扫任务。已在运行时直接返回。"""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name="session-expiry-sweeper")
        logger.info(
            f"Expiry sweeper started (every {self.interval_s}s, "
            f"idle timeout {self.idle_timeout_ms / 60000:g}m)"
        )

    async def stop(self) -> None:
        """停止清扫：通知循环退出并等待它结束（正在进行的一轮会完整跑完）。"""
        if self._task is None:
            return
        task, self._task = self._task, None
        if self._stop_event is not None:
            self._stop_event.set()
        await task
        logger.info("Expiry sweeper stopped")

    async def _run_loop(self) -> None:
        """清扫主循环。先等待一个间隔周期，再执行清扫，循环往复。"""
        while True:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_s)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await self.sweep_now()
            except Exception as e:
                logger.error(f"Expiry sweep error: {e}")

    def is_expired(self, session: "Session", at_ms: int) -> bool:
        return at_ms - session.last_accessed_at_ms >= self.idle_timeout_ms

    async def sweep_now(self) -> int:
        """
        立即执行一轮清扫。

        返回:
            本轮从注册表摘除的会话数（与销毁是否出错无关）
        """
        now = self._clock()
        candidates = [
            record.id
            for record in self.registry.snapshot()
            if now - record.last_accessed_at_ms >= self.idle_timeout_ms
        ]
        if not candidates:
            logger.debug("Expiry sweep: no idle sessions")
            return 0

        logger.info(f"Cleaning up {len(candidates)} expired session(s)")
        removed = 0
        for session_id in candidates:
            # 快照之后可能被访问或被同 ID 新会话替换，摘除前再确认一次
            session = self.registry.remove_if(session_id, lambda s: self.is_expired(s, now))
            if session is None:
                continue
            removed += 1
            try:
                await self.on_expired(session)
            except Exception as e:
                logger.error(f"Failed to tear down expired session {session_id}: {e}")
        return removed
