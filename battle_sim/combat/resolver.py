import random
from dataclasses import dataclass

from ..models import BattleConfig, UnitStats
from .calculator import CombatCalculator


@dataclass(frozen=True)
class AttackOutcome:
    """单次普通攻击的判定结果"""
    is_miss: bool
    is_crit: bool
    damage: int


class AttackResolver:
    """普通攻击判定 (命中 -> 暴击 -> 伤害公式)"""

    @staticmethod
    def resolve_attack(
        attacker: UnitStats,
        defender: UnitStats,
        config: BattleConfig,
        rng: random.Random,
    ) -> AttackOutcome:
        """对一次普通攻击进行判定并计算伤害。

        判定顺序:
        1. 命中判定: random() < clamp(命中 - 闪避, 0, 1)，未命中直接返回 0 伤害
        2. 暴击判定: random() < 暴击率
        3. 伤害公式: 对减免后的伤害乘以暴击倍率

        Args:
            attacker: 攻击方属性
            defender: 防御方属性
            config: 战斗配置
            rng: 本场战斗的随机数生成器

        Returns:
            AttackOutcome: 判定结果与最终伤害
        """
        hit_chance = CombatCalculator.hit_chance(attacker, defender)
        if rng.random() >= hit_chance:
            return AttackOutcome(is_miss=True, is_crit=False, damage=0)

        is_crit = rng.random() < attacker.crit_rate
        multiplier = attacker.crit_damage if is_crit else 1.0
        damage = CombatCalculator.calculate_damage(
            attacker.atk, defender.defense, config, rng, crit_multiplier=multiplier
        )
        return AttackOutcome(is_miss=False, is_crit=is_crit, damage=damage)

    @staticmethod
    def resolve_skill_damage(
        caster: UnitStats,
        target: UnitStats,
        base_damage: float,
        damage_type: str,
        config: BattleConfig,
        rng: random.Random,
    ) -> int:
        """技能伤害 (必中、不暴击)。

        Args:
            caster: 施放者属性
            target: 目标属性
            base_damage: 技能伤害数值
            damage_type: "flat" 为固定值，"multiplier" 为 ATK 倍率
            config: 战斗配置
            rng: 随机数生成器

        Returns:
            最终伤害 (整数)
        """
        nominal = base_damage if damage_type == "flat" else caster.atk * base_damage
        return CombatCalculator.calculate_damage(nominal, target.defense, config, rng)
