"""
会话管理器实现模块 - 会话生命周期的对外入口。

SessionManager 组合了以下组件：
- SessionRegistry：id → Session 的并发安全存储
- CreationCoordinator：同一 ID 的并发创建只构建一次执行环境
- ExpirySweeper：后台定期回收空闲会话

控制流：
    get_or_create_session(id)
      ├─ 注册表命中 → 刷新访问时间并返回
      └─ 未命中 → 交给 CreationCoordinator（single-flight）→ 插入注册表
    ExpirySweeper 独立地按固定间隔唤醒，摘除并销毁空闲会话。

销毁（teardown）总是在会话从注册表摘除之后进行：
销毁期间同 ID 的新请求可以立刻创建一个全新的会话，不会被阻塞。
销毁失败只记录在 TeardownReport 中，永远不会抛给调用方。

【Java 开发者类比】
- SessionManager 类似于显式构造、通过依赖注入传递的 Spring Bean（而非全局单例）
- async with SessionManager(...) 类似于 try-with-resources
"""

import asyncio
from collections import deque
from typing import Any, Callable

from loguru import logger

from vivarium.config.schema import Config
from vivarium.environment.base import EnvironmentFactory, ExecutionResult, InputFile
from vivarium.session.coordinator import CreationCoordinator
from vivarium.session.errors import ManagerClosedError, ValidationError
from vivarium.session.registry import SessionRegistry
from vivarium.session.types import (
    REASON_EXPIRED,
    REASON_REMOVED,
    REASON_SHUTDOWN,
    Session,
    SessionInfo,
    SessionView,
    TeardownReport,
)
from vivarium.sweeper.service import (
    DEFAULT_IDLE_TIMEOUT_MINUTES,
    DEFAULT_SWEEP_INTERVAL_S,
    ExpirySweeper,
)
from vivarium.utils.helpers import now_ms


class SessionManager:
    """
    会话管理器 - 创建、查找、刷新、过期和销毁会话。

    每个实例独立持有自己的配置和依赖，可以在同一进程中创建多个互不影响的实例。

    属性:
        registry: 会话注册表
        coordinator: 创建协调器
        sweeper: 过期清扫器
        _factory: 执行环境工厂
        _teardown_reports: 最近的销毁报告（有界队列）
        _closed: 是否已开始关闭
        _shutdown_task: 关闭流程任务（首次 shutdown 时创建）
    """

    def __init__(
        self,
        environment_factory: EnvironmentFactory,
        idle_timeout_minutes: float = DEFAULT_IDLE_TIMEOUT_MINUTES,
        sweep_interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
        teardown_history: int = 100,
        clock: Callable[[], int] = now_ms,
    ):
        """
        初始化会话管理器。构造时不要求事件循环已运行，后台清扫在 start() 时启动。

        参数:
            environment_factory: 返回已初始化 Environment 的异步工厂
            idle_timeout_minutes: 空闲超时（分钟），默认 10
            sweep_interval_s: 清扫间隔（秒），默认 60
            teardown_history: 保留的销毁报告条数
            clock: 毫秒时钟（测试时可注入假时钟）
        """
        self._factory = environment_factory
        self._clock = clock
        self.registry = SessionRegistry(clock)
        self.coordinator = CreationCoordinator(self.registry, clock)
        self.sweeper = ExpirySweeper(
            self.registry,
            on_expired=self._on_expired,
            idle_timeout_minutes=idle_timeout_minutes,
            interval_s=sweep_interval_s,
            clock=clock,
        )
        self._teardown_reports: deque[TeardownReport] = deque(maxlen=teardown_history)
        self._closed = False
        self._shutdown_task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls,
        config: Config,
        environment_factory: EnvironmentFactory | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> "SessionManager":
        """
        根据配置构建管理器。

        未提供 environment_factory 时使用内置的 SubprocessEnvironment。
        """
        if environment_factory is None:
            from vivarium.environment.process import make_environment_factory
            environment_factory = make_environment_factory(config.environment)
        return cls(
            environment_factory,
            idle_timeout_minutes=config.sessions.idle_timeout_minutes,
            sweep_interval_s=config.sessions.sweep_interval_s,
            teardown_history=config.sessions.teardown_history,
            clock=clock,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def teardown_reports(self) -> list[TeardownReport]:
        """最近的销毁报告，按完成顺序排列（最新的在最后）。"""
        return list(self._teardown_reports)

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """启动后台过期清扫。"""
        if self._closed:
            raise ManagerClosedError("SessionManager has been shut down")
        await self.sweeper.start()

    async def shutdown(self) -> None:
        """
        关闭管理器。

        流程：
        1. 标记关闭，之后的 get_or_create_session 抛 ManagerClosedError
        2. 等待在途创建结束（不取消它们）
        3. 摘除并并发销毁所有剩余会话，单个失败不影响整体
        4. 最后停止清扫器

        关闭流程在独立任务中运行，调用方通过 asyncio.shield 等待：
        调用方被取消（wait_for 超时、Ctrl+C）不会中断关闭本身，
        重复调用等待同一个关闭任务完成。
        """
        if self._shutdown_task is None:
            self._closed = True
            self._shutdown_task = asyncio.create_task(self._shutdown(), name="session-manager-shutdown")
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self) -> None:
        logger.info("Shutting down SessionManager...")
        await self.coordinator.wait_idle()
        sessions = self.registry.drain()
        if sessions:
            logger.info(f"Tearing down {len(sessions)} session(s)")
            await asyncio.gather(*(self._teardown(s, REASON_SHUTDOWN) for s in sessions))
        await self.sweeper.stop()
        logger.info("SessionManager shutdown complete")

    async def __aenter__(self) -> "SessionManager":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # 会话操作
    # ------------------------------------------------------------------

    async def get_or_create_session(self, session_id: str) -> SessionView:
        """
        获取已有会话或创建新会话。

        并发调用同一个不存在的 ID 时只会构建一个执行环境，
        所有调用方拿到同一个会话（或同一个 CreationError）。

        异常:
            ValidationError: 会话 ID 为空
            ManagerClosedError: 管理器已开始关闭
            CreationError: 执行环境初始化失败（注册表中不会留下该 ID）
        """
        self._validate(session_id)
        if self._closed:
            raise ManagerClosedError("SessionManager is shutting down")
        session = await self.coordinator.get_or_create(session_id, self._factory)
        return SessionView(session)

    def get_session(self, session_id: str) -> SessionView | None:
        """获取已有会话并刷新访问时间；不存在时返回 None，不会创建。"""
        self._validate(session_id)
        session = self.registry.lookup(session_id)
        return SessionView(session) if session is not None else None

    async def remove_session(self, session_id: str) -> bool:
        """
        移除并销毁会话。

        返回:
            True 表示已移除；会话不存在时返回 False（不抛异常）
        """
        self._validate(session_id)
        session = self.registry.remove(session_id)
        if session is None:
            return False
        logger.info(f"Removing session: {session_id}")
        await self._teardown(session, REASON_REMOVED)
        return True

    async def execute(
        self,
        session_id: str,
        code: str,
        files: list[InputFile] | None = None,
    ) -> ExecutionResult:
        """获取或创建会话，然后在其执行环境中运行代码。"""
        view = await self.get_or_create_session(session_id)
        return await view.execute(code, files)

    async def sweep_now(self) -> int:
        """立即执行一轮过期清扫，返回摘除的会话数。"""
        return await self.sweeper.sweep_now()

    # ------------------------------------------------------------------
    # 观测
    # ------------------------------------------------------------------

    def list_sessions(self) -> list[SessionInfo]:
        """列出所有活跃会话（不刷新访问时间），附带年龄和空闲时长。"""
        now = self._clock()
        return [SessionInfo.from_record(r, now) for r in self.registry.snapshot()]

    def active_session_count(self) -> int:
        return self.registry.count()

    def health(self) -> dict[str, Any]:
        return {
            "status": "shutting_down" if self._closed else "healthy",
            "activeSessions": self.active_session_count(),
        }

    # ------------------------------------------------------------------
    # 内部
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(session_id: str) -> None:
        if not isinstance(session_id, str) or not session_id:
            raise ValidationError("session_id is required")

    async def _on_expired(self, session: Session) -> TeardownReport | None:
        return await self._teardown(session, REASON_EXPIRED)

    async def _teardown(self, session: Session, reason: str) -> TeardownReport | None:
        report = await session.teardown(reason, self._clock)
        if report is None:
            logger.debug(f"Session {session.id} is already being torn down")
            return None
        self._teardown_reports.append(report)
        if report.ok:
            logger.info(f"Session removed: {session.id} ({reason})")
        else:
            logger.warning(
                f"Session removed with {len(report.errors)} teardown error(s): {session.id} ({reason})"
            )
        return report
