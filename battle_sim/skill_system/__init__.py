"""
skill_system 包初始化文件
"""

from .conditions import TriggerChecker
from .processor import SkillProcessor

__all__ = [
    'TriggerChecker',
    'SkillProcessor',
]
