"""
会话注册表 - id → Session 的并发安全存储。

注册表拥有其中所有 Session 的所有权，并保证：
- 同一 ID 任意时刻至多一个 Session
- 可见的 Session 一定处于 ACTIVE 状态

每个操作都在 threading.Lock 内完成且从不跨越 await，
因此 asyncio 任务之间、以及其它线程上的同步读取者（如指标导出）
都不会看到"半更新"的映射。

【Java 开发者类比】
- SessionRegistry 类似于一个只暴露原子操作的 ConcurrentHashMap
- remove() 类似于 ConcurrentHashMap.remove(key)，返回被移除的值
"""

import threading
from typing import Callable

from vivarium.session.errors import DuplicateKeyError
from vivarium.session.types import Session, SessionRecord, SessionState
from vivarium.utils.helpers import now_ms


class SessionRegistry:
    """
    会话注册表。

    注册表只负责存取，不做销毁：remove() 返回的 Session 由调用方负责 teardown。

    属性:
        _sessions: 会话字典 {session_id: Session}
        _lock: 保护 _sessions 的互斥锁（持有时间只有一次字典操作）
        _clock: 毫秒时钟，lookup 用它刷新访问时间
    """

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def insert(self, session_id: str, session: Session) -> None:
        """
        登记一个会话。

        异常:
            DuplicateKeyError: ID 已存在（正常情况下不会发生，出现说明协调逻辑有 bug）
            RuntimeError: 会话不是 ACTIVE 状态
        """
        if session.state is not SessionState.ACTIVE:
            raise RuntimeError(f"Only active sessions can be registered, got {session.state.value}")
        with self._lock:
            if session_id in self._sessions:
                raise DuplicateKeyError(session_id)
            self._sessions[session_id] = session

    def lookup(self, session_id: str) -> Session | None:
        """查找会话并刷新其最后访问时间。这是读路径上唯一的写操作。"""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.touch(self._clock())
            return session

    def peek(self, session_id: str) -> Session | None:
        """查找会话但不刷新访问时间。"""
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Session | None:
        """原子地移除并返回会话；不存在时返回 None。"""
        with self._lock:
            return self._sessions.pop(session_id, None)

    def remove_if(self, session_id: str, predicate: Callable[[Session], bool]) -> Session | None:
        """
        仅当当前登记的会话满足 predicate 时才移除它。

        清扫器用它做"检查空闲时长 + 摘除"的原子组合，
        避免误删快照之后刚被访问过、或已被同 ID 新会话替换的条目。
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not predicate(session):
                return None
            del self._sessions[session_id]
            return session

    def drain(self) -> list[Session]:
        """一次性移除并返回全部会话（关闭时使用）。"""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            return sessions

    def snapshot(self) -> list[SessionRecord]:
        """某一时刻的一致快照，不刷新访问时间。"""
        with self._lock:
            return [
                SessionRecord(
                    id=sid,
                    created_at_ms=s.created_at_ms,
                    last_accessed_at_ms=s.last_accessed_at_ms,
                )
                for sid, s in self._sessions.items()
            ]

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        return self.count()
