"""
过期清扫模块 - 定期回收空闲会话。

本模块提供 ExpirySweeper，按固定间隔扫描会话注册表，
把空闲时长超过阈值的会话摘除并交给销毁回调。
"""

from vivarium.sweeper.service import ExpirySweeper

__all__ = ["ExpirySweeper"]
