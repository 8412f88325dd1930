"""
会话管理模块 - 把客户端会话复用到隔离执行环境上。

本模块提供了会话（Session）的完整生命周期管理：
- SessionRegistry：并发安全的 id → Session 存储
- CreationCoordinator：同一 ID 的并发创建只构建一次执行环境
- SessionManager：对外入口（get_or_create_session / remove_session / list_sessions / shutdown）

【架构定位】
HTTP 或 CLI 层通过会话 ID 向 SessionManager 请求会话，拿到 SessionView 后在其中执行代码；
ExpirySweeper 在后台定期回收空闲会话。
"""

from vivarium.session.errors import (
    CreationError,
    DuplicateKeyError,
    ManagerClosedError,
    SessionTerminatedError,
    TeardownError,
    ValidationError,
    VivariumError,
)
from vivarium.session.types import (
    Session,
    SessionInfo,
    SessionRecord,
    SessionState,
    SessionView,
    TeardownReport,
)
from vivarium.session.registry import SessionRegistry
from vivarium.session.coordinator import CreationCoordinator
from vivarium.session.manager import SessionManager

__all__ = [
    "SessionManager",
    "SessionRegistry",
    "CreationCoordinator",
    "Session",
    "SessionInfo",
    "SessionRecord",
    "SessionState",
    "SessionView",
    "TeardownReport",
    "VivariumError",
    "ValidationError",
    "DuplicateKeyError",
    "CreationError",
    "TeardownError",
    "ManagerClosedError",
    "SessionTerminatedError",
]
