"""
combat 包初始化文件
BattleSimulator 依赖 skill_system，需从 combat.engine 直接导入
"""

from .calculator import CombatCalculator
from .resolver import AttackOutcome, AttackResolver
from .state import CombatUnit, EffectKind, StatusEffect
from .targeting import TargetSelector
from .statistics_collector import BattleRecord, StatisticsCollector, UnitRecord

__all__ = [
    'CombatCalculator',
    'AttackOutcome',
    'AttackResolver',
    'CombatUnit',
    'EffectKind',
    'StatusEffect',
    'TargetSelector',
    'BattleRecord',
    'StatisticsCollector',
    'UnitRecord',
]
