import math
import random
from typing import Optional

from ..config import Config
from ..models import ArmorPenetration, BattleConfig, DamageFormula, DefenseFormula, UnitStats


class CombatCalculator:
    """战斗计算核心 (纯函数，不持有状态)"""

    @staticmethod
    def effective_defense(defense: float, penetration: Optional[ArmorPenetration]) -> float:
        """
        计算穿透/削减后的有效防御
        顺序: 百分比削减 -> 固定削减 -> 固定穿透 (不低于 0) -> 百分比穿透

        Args:
            defense: 防御方基础防御
            penetration: 攻击方的穿透配置，可为空

        Returns:
            有效防御值 (>= 0)
        """
        effective: float = defense
        if penetration is None:
            return effective
        effective *= 1 - penetration.percent_reduction
        effective = max(0.0, effective - penetration.flat_reduction)
        effective = max(0.0, effective - penetration.flat_penetration)
        effective *= 1 - penetration.percent_penetration
        return effective

    @staticmethod
    def defense_reduction(defense: float, formula: DefenseFormula) -> float:
        """
        防御减伤比例 (仅 divisive / multiplicative / logarithmic 使用)
        subtractive 公式不走比例减伤，返回 0

        Args:
            defense: 有效防御
            formula: 防御公式

        Returns:
            减伤比例 [0, 0.9]
        """
        match formula:
            case DefenseFormula.DIVISIVE:
                return defense / (defense + Config.DIVISIVE_DEFENSE_K)
            case DefenseFormula.MULTIPLICATIVE:
                return min(Config.MAX_DEFENSE_REDUCTION, defense / Config.MULTIPLICATIVE_DEFENSE_DIVISOR)
            case DefenseFormula.LOGARITHMIC:
                reduction = math.log10(defense + Config.LOG_DEFENSE_OFFSET) / Config.LOG_DEFENSE_DIVISOR
                return min(Config.MAX_DEFENSE_REDUCTION, reduction)
            case _:
                return 0.0

    @staticmethod
    def mitigate(
        nominal: float,
        defense: float,
        config: BattleConfig,
        rng: Optional[random.Random] = None,
    ) -> float:
        """
        按伤害公式对名义伤害进行减免 (未暴击、未取整、未设下限)
        rng 为空时 random 公式取期望值 1.0

        Args:
            nominal: 名义伤害 (固定值或 ATK * 倍率)
            defense: 有效防御
            config: 战斗配置
            rng: 本场战斗的随机数生成器

        Returns:
            减免后的伤害 (可能为负)
        """
        match config.damage_formula:
            case DamageFormula.SIMPLE:
                return nominal - defense
            case DamageFormula.MMORPG:
                return nominal * (Config.MMORPG_DEFENSE_K / (Config.MMORPG_DEFENSE_K + defense))
            case DamageFormula.PERCENTAGE:
                reduction = min(Config.MAX_DEFENSE_REDUCTION, defense / Config.PERCENTAGE_DEFENSE_DIVISOR)
                return nominal * (1 - reduction)
            case DamageFormula.RANDOM:
                factor = 1.0
                if rng is not None:
                    factor = rng.uniform(Config.RANDOM_DAMAGE_MIN, Config.RANDOM_DAMAGE_MAX)
                return nominal * factor - defense
            case DamageFormula.MULTIPLICATIVE:
                if config.defense_formula == DefenseFormula.SUBTRACTIVE:
                    return nominal - defense
                reduction = CombatCalculator.defense_reduction(defense, config.defense_formula)
                return nominal * (1 - reduction)
        raise ValueError(f"未知的伤害公式: {config.damage_formula}")

    @staticmethod
    def round_half_up(value: float) -> int:
        """四舍五入到整数 (0.5 向上)"""
        return int(math.floor(value + 0.5))

    @staticmethod
    def calculate_damage(
        nominal: float,
        defense: float,
        config: BattleConfig,
        rng: Optional[random.Random] = None,
        crit_multiplier: float = 1.0,
    ) -> int:
        """
        完整伤害结算: 穿透 -> 公式减免 -> 下限 -> 暴击 -> 取整

        Args:
            nominal: 名义伤害
            defense: 防御方基础防御
            config: 战斗配置
            rng: 随机数生成器 (random 公式需要)
            crit_multiplier: 暴击倍率，未暴击为 1.0

        Returns:
            最终伤害 (整数, >= 0)
        """
        effective_def = CombatCalculator.effective_defense(defense, config.armor_penetration)
        mitigated = CombatCalculator.mitigate(nominal, effective_def, config, rng)
        floored = max(config.min_damage, mitigated)
        return max(0, CombatCalculator.round_half_up(floored * crit_multiplier))

    @staticmethod
    def hit_chance(attacker: UnitStats, defender: UnitStats) -> float:
        """命中率 = clamp(命中 - 闪避, 0, 1)"""
        return max(0.0, min(1.0, attacker.accuracy - defender.evasion))

    @staticmethod
    def theoretical_dps(attacker: UnitStats, defender: UnitStats, config: BattleConfig) -> float:
        """
        理论 DPS (忽略方差的期望值)
        公式: ATK * 有效倍率 * 命中率 * (1 + 暴击率 * (暴伤 - 1)) / 攻击间隔

        Args:
            attacker: 攻击方属性
            defender: 防御方属性
            config: 战斗配置

        Returns:
            每秒期望伤害
        """
        if attacker.atk <= 0:
            return 0.0
        effective_def = CombatCalculator.effective_defense(defender.defense, config.armor_penetration)
        single_hit = max(config.min_damage, CombatCalculator.mitigate(attacker.atk, effective_def, config))
        effective_multiplier = single_hit / attacker.atk
        crit_factor = 1 + attacker.crit_rate * (attacker.crit_damage - 1)
        hit_probability = CombatCalculator.hit_chance(attacker, defender)
        return attacker.atk * effective_multiplier * hit_probability * crit_factor / attacker.attack_interval
