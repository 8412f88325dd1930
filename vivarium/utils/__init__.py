"""
工具函数模块 - 提供 vivarium 项目全局通用的辅助函数。

本模块包含：
- ensure_dir：确保目录存在
- get_data_path：获取数据存储路径
- now_ms：毫秒级时间戳（会话时间戳的统一时钟）
"""

from vivarium.utils.helpers import ensure_dir, get_data_path, now_ms

__all__ = ["ensure_dir", "get_data_path", "now_ms"]
