"""
battle_sim 包初始化文件
蒙特卡洛战斗模拟引擎: 1v1 / 团队战逐时间步模拟与统计归并
"""

from .config import Config
from .models import (
    UnitStats, SkillTrigger, DamageSkill, AoeDamageSkill, HealSkill, AoeHealSkill,
    HotSkill, InvincibleSkill, ReviveSkill, ArmorPenetration, BattleConfig,
    TeamBattleConfig, SimulationOptions, BattleLogEntry, parse_skill, parse_skills,
)
from .combat.engine import BattleSimulator
from .simulation import (
    SimulationResult, TeamResult, run_simulation, run_simulation_async, run_team_simulation,
)
from .loader import ScenarioLoader

__all__ = [
    'Config',
    'UnitStats',
    'SkillTrigger',
    'DamageSkill',
    'AoeDamageSkill',
    'HealSkill',
    'AoeHealSkill',
    'HotSkill',
    'InvincibleSkill',
    'ReviveSkill',
    'ArmorPenetration',
    'BattleConfig',
    'TeamBattleConfig',
    'SimulationOptions',
    'BattleLogEntry',
    'parse_skill',
    'parse_skills',
    'BattleSimulator',
    'SimulationResult',
    'TeamResult',
    'run_simulation',
    'run_simulation_async',
    'run_team_simulation',
    'ScenarioLoader',
]
