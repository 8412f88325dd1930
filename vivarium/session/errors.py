"""
会话管理异常体系。

- ValidationError：会话 ID 缺失或非法
- DuplicateKeyError：注册表重复插入（说明协调逻辑有 bug）
- CreationError：执行环境构建或初始化失败，会返回给所有等待该 ID 的调用方
- TeardownError：销毁步骤（terminate / release）失败，只记录不抛出
- ManagerClosedError：管理器关闭后仍请求创建会话
- SessionTerminatedError：会话已被移除后仍通过旧句柄执行代码
"""


class VivariumError(Exception):
    """vivarium 所有领域异常的基类。"""


class ValidationError(VivariumError):
    """会话 ID 非法（空字符串或非字符串）。"""


class DuplicateKeyError(VivariumError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id!r} is already registered")
        self.session_id = session_id


class CreationError(VivariumError):
    """
    执行环境创建失败。

    原始异常通过 __cause__ 链接（raise ... from exc）。
    同一次在途创建的所有等待者收到的是同一个 CreationError 实例。
    """

    def __init__(self, session_id: str, message: str):
        super().__init__(f"Failed to create session {session_id!r}: {message}")
        self.session_id = session_id


class TeardownError(VivariumError):
    """销毁会话时某一步骤失败。step 为 "terminate" 或 "release"。"""

    def __init__(self, session_id: str, step: str, error: BaseException):
        super().__init__(f"{step} failed for session {session_id!r}: {error}")
        self.session_id = session_id
        self.step = step
        self.error = error


class ManagerClosedError(VivariumError):
    """SessionManager 已开始关闭，不再接受新的会话创建。"""


class SessionTerminatedError(VivariumError):
    """通过已被移除（或正在销毁）的会话句柄执行代码。"""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id!r} is no longer active")
        self.session_id = session_id
