"""
会话类型定义 - 会话实体、状态机与对外视图。

本模块定义了会话生命周期的核心数据结构：
- SessionState：会话状态（Initializing → Active → Terminating → Terminated）
- Session：会话实体，独占持有一个执行环境
- SessionView：交给调用方的只读句柄，可以执行代码但拿不到环境本身
- SessionRecord / SessionInfo：注册表快照行与带年龄/空闲时长的观测行
- TeardownReport：一次销毁的结果（每个失败步骤一条 TeardownError）

【状态机】
    INITIALIZING → ACTIVE       : 环境创建成功，插入注册表之前
    ACTIVE       → TERMINATING  : 过期、显式移除或关闭，此刻已从注册表摘除
    TERMINATING  → TERMINATED   : terminate + release 均已尝试

    TERMINATED 是吸收态，之后同一 ID 的新请求会构建一个全新的 Session。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from loguru import logger

from vivarium.environment.base import Environment, ExecutionResult, InputFile
from vivarium.session.errors import SessionTerminatedError, TeardownError
from vivarium.utils.helpers import ms_to_minutes, now_ms


class SessionState(str, Enum):
    """会话生命周期状态。"""
    INITIALIZING = "initializing"
    ACTIVE = "active"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


_ALLOWED_TRANSITIONS: frozenset[tuple[SessionState, SessionState]] = frozenset({
    (SessionState.INITIALIZING, SessionState.ACTIVE),
    (SessionState.ACTIVE, SessionState.TERMINATING),
    (SessionState.TERMINATING, SessionState.TERMINATED),
})


# 销毁原因
REASON_EXPIRED = "expired"
REASON_REMOVED = "removed"
REASON_SHUTDOWN = "shutdown"
REASON_DISCARDED = "discarded"


@dataclass
class TeardownReport:
    """
    一次会话销毁的结果。

    属性:
        session_id: 被销毁的会话 ID
        reason: 销毁原因（expired / removed / shutdown / discarded）
        errors: 失败的销毁步骤，空列表表示 terminate 和 release 都成功
        finished_at_ms: 销毁完成时间（毫秒时间戳）
    """
    session_id: str
    reason: str
    errors: list[TeardownError] = field(default_factory=list)
    finished_at_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(eq=False)
class Session:
    """
    单个会话 - 把客户端选择的 ID 绑定到一个独占的执行环境。

    Session 只由 CreationCoordinator 构造；进入注册表时一定处于 ACTIVE。
    eq=False：两个 Session 只有是同一个对象时才相等。
    """

    id: str
    environment: Environment = field(repr=False)
    created_at_ms: int
    last_accessed_at_ms: int
    state: SessionState = SessionState.INITIALIZING

    def transition(self, to: SessionState) -> None:
        """执行状态迁移，非法迁移说明调用方有 bug，直接抛 RuntimeError。"""
        if (self.state, to) not in _ALLOWED_TRANSITIONS:
            raise RuntimeError(f"Illegal session transition {self.state.value} -> {to.value} for {self.id!r}")
        self.state = to

    def touch(self, at_ms: int) -> None:
        """刷新最后访问时间。时间戳只增不减，乱序的并发刷新不会让它回退。"""
        if at_ms > self.last_accessed_at_ms:
            self.last_accessed_at_ms = at_ms

    async def teardown(self, reason: str, clock: Callable[[], int] = now_ms) -> TeardownReport | None:
        """
        销毁会话：先 terminate（中断执行）再 release（释放资源）。

        两个步骤都会被尝试，失败只记录到报告里，不会抛出。
        已经处于 TERMINATING / TERMINATED 的会话不再触碰环境，返回 None，
        以免一份空报告掩盖另一处仍在进行（可能失败）的销毁。

        参数:
            reason: 销毁原因，写入报告和日志
            clock: 毫秒时钟

        返回:
            TeardownReport；重复销毁时返回 None
        """
        if self.state in (SessionState.TERMINATING, SessionState.TERMINATED):
            return None

        report = TeardownReport(session_id=self.id, reason=reason)
        self.transition(SessionState.TERMINATING)
        try:
            for step in ("terminate", "release"):
                try:
                    await getattr(self.environment, step)()
                except Exception as e:
                    logger.warning(f"Teardown step {step} failed for session {self.id} ({reason}): {e}")
                    report.errors.append(TeardownError(self.id, step, e))
        finally:
            self.transition(SessionState.TERMINATED)
            report.finished_at_ms = clock()
        return report


class SessionView:
    """
    调用方拿到的会话句柄。

    只暴露 ID、时间戳和状态，以及在会话环境中执行代码的能力；
    环境对象本身始终只被 Session 持有。
    """

    __slots__ = ("_session",)

    def __init__(self, session: Session):
        self._session = session

    @property
    def id(self) -> str:
        return self._session.id

    @property
    def created_at_ms(self) -> int:
        return self._session.created_at_ms

    @property
    def last_accessed_at_ms(self) -> int:
        return self._session.last_accessed_at_ms

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def is_active(self) -> bool:
        return self._session.state is SessionState.ACTIVE

    async def execute(self, code: str, files: list[InputFile] | None = None) -> ExecutionResult:
        """在会话的执行环境中运行代码。会话已被移除时抛出 SessionTerminatedError。"""
        if not self.is_active:
            raise SessionTerminatedError(self.id)
        return await self._session.environment.execute(code, files)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SessionView):
            return NotImplemented
        return self._session is other._session

    def __hash__(self) -> int:
        return id(self._session)

    def __repr__(self) -> str:
        return f"SessionView(id={self.id!r}, state={self.state.value})"


@dataclass(frozen=True)
class SessionRecord:
    """注册表快照中的一行：不会刷新访问时间。"""
    id: str
    created_at_ms: int
    last_accessed_at_ms: int


@dataclass(frozen=True)
class SessionInfo:
    """listSessions 的一行：在快照基础上附加年龄和空闲时长（分钟）。"""
    id: str
    created_at_ms: int
    last_accessed_at_ms: int
    age_minutes: float
    idle_minutes: float

    @classmethod
    def from_record(cls, record: SessionRecord, at_ms: int) -> "SessionInfo":
        return cls(
            id=record.id,
            created_at_ms=record.created_at_ms,
            last_accessed_at_ms=record.last_accessed_at_ms,
            age_minutes=ms_to_minutes(at_ms - record.created_at_ms),
            idle_minutes=ms_to_minutes(at_ms - record.last_accessed_at_ms),
        )

    def to_dict(self) -> dict[str, Any]:
        """序列化为 camelCase 字典（与 HTTP 层的 JSON 字段保持一致）。"""
        return {
            "id": self.id,
            "createdAtMs": self.created_at_ms,
            "lastAccessedAtMs": self.last_accessed_at_ms,
            "ageMinutes": self.age_minutes,
            "idleMinutes": self.idle_minutes,
        }
