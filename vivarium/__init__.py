"""
vivarium - 会话化的代码执行沙箱管理器

模块概述：
    本文件是 vivarium 包的入口文件（__init__.py），定义了包的元信息。
    vivarium 把大量客户端可见的"会话"复用到构建代价高昂的隔离执行环境上，
    并通过空闲超时和周期性清扫来约束资源占用。

    整个项目的核心功能包括：
    - 会话生命周期管理（创建、查找、刷新、过期、销毁）
    - 并发创建去重（同一会话 ID 的并发请求只构建一次执行环境）
    - 后台过期清扫（定期回收空闲会话）
    - 可替换的执行环境能力接口（内置基于子进程的参考实现）
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "🧪"
