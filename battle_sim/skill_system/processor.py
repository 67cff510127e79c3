"""
Skill Processor System
技能释放的核心处理逻辑：选择可释放的技能、按技能变体结算效果、处理死亡时的复活
"""

from typing import TYPE_CHECKING, List, Optional, Tuple

from ..combat.calculator import CombatCalculator
from ..combat.resolver import AttackResolver
from ..combat.state import CombatUnit, StatusEffect
from ..combat.targeting import TargetSelector
from ..models import (
    AoeDamageSkill, AoeHealSkill, DamageSkill, HealSkill, HotSkill,
    InvincibleSkill, LogAction, ReviveSkill, Skill,
)
from .conditions import TriggerChecker

if TYPE_CHECKING:
    from ..combat.engine import BattleSimulator


def _heal_value(amount: float, heal_type: str, max_hp: float) -> int:
    """治疗数值: percent 以最大 HP 为基准，结果四舍五入"""
    raw = max_hp * amount if heal_type == "percent" else amount
    return CombatCalculator.round_half_up(raw)


class SkillProcessor:
    """技能处理器 (每场战斗一个实例)"""

    def __init__(self, battle: "BattleSimulator"):
        self.battle = battle

    # ========== 主动技能 ==========

    def try_cast(self, unit: CombatUnit, time: float) -> bool:
        """按声明顺序检查技能，释放第一个满足条件的技能。

        复活技能只在死亡时被动触发，这里跳过。

        Args:
            unit: 行动单位
            time: 当前战斗时间

        Returns:
            本步是否释放了技能
        """
        if not unit.can_use_skills:
            return False
        for skill in unit.skills:
            if isinstance(skill, ReviveSkill):
                continue
            if TriggerChecker.can_trigger(skill, unit, self.battle.rng):
                self.cast(unit, skill, time)
                return True
        return False

    def cast(self, unit: CombatUnit, skill: Skill, time: float) -> None:
        """结算一次技能释放 (进入冷却并消耗 on_hit / on_crit 标记)"""
        battle = self.battle
        unit.start_cooldown(skill)
        unit.last_attack_hit = False
        unit.last_attack_crit = False
        battle.collector.on_skill_cast(time, unit, skill)

        match skill:
            case DamageSkill():
                target = battle.selector.select(unit, battle.enemies_of(unit))
                if target is not None:
                    self._hit(unit, target, skill, skill.damage, skill.damage_type, time)
            case AoeDamageSkill():
                targets = TargetSelector.select_group(
                    battle.enemies_of(unit), skill.aoe_target_count, skill.aoe_target_mode, battle.rng
                )
                for target in targets:
                    if target.is_alive:
                        self._hit(unit, target, skill, skill.damage, skill.damage_type, time)
            case HealSkill():
                amount = _heal_value(skill.heal_amount, skill.heal_type, unit.max_hp)
                healed = unit.heal(amount)
                battle.collector.on_heal(time, unit, unit, skill, healed)
            case AoeHealSkill():
                targets = TargetSelector.select_group(
                    battle.allies_of(unit), skill.aoe_target_count, skill.aoe_target_mode, battle.rng
                )
                for target in targets:
                    amount = _heal_value(skill.heal_amount, skill.heal_type, target.max_hp)
                    healed = target.heal(amount)
                    battle.collector.on_heal(time, unit, target, skill, healed)
            case HotSkill():
                effect = StatusEffect.hot(skill, unit.max_hp)
                unit.add_effect(effect)
                action = LogAction.BUFF if effect.tick_amount >= 0 else LogAction.DEBUFF
                battle.collector.on_effect_start(time, unit, skill, action)
            case InvincibleSkill():
                unit.add_effect(StatusEffect.invincible(skill))
                battle.collector.on_effect_start(time, unit, skill, LogAction.INVINCIBLE)
            case ReviveSkill():
                pass
            case _:
                raise TypeError(f"未知的技能类型: {type(skill).__name__}")

    def _hit(
        self,
        caster: CombatUnit,
        target: CombatUnit,
        skill: Skill,
        base_damage: float,
        damage_type: str,
        time: float,
    ) -> None:
        """技能伤害: 必中、不暴击"""
        battle = self.battle
        damage = AttackResolver.resolve_skill_damage(
            caster.stats, target.stats, base_damage, damage_type, battle.config, battle.rng
        )
        battle.apply_skill_damage(caster, target, skill, damage, time)

    # ========== 复活 ==========

    def _revive_candidates(self, unit: CombatUnit) -> List[Tuple[CombatUnit, ReviveSkill]]:
        """自身的 self 复活技能优先，其次是存活队友的 ally 复活技能"""
        candidates = [(unit, s) for s in unit.revive_skills if s.revive_target == "self"]
        for ally in self.battle.allies_of(unit):
            if ally is unit or not ally.is_alive:
                continue
            candidates.extend((ally, s) for s in ally.revive_skills if s.revive_target == "ally")
        return candidates

    def try_revive(self, unit: CombatUnit, time: float) -> Optional[ReviveSkill]:
        """单位死亡时检查复活 (每个单位每场战斗至多一次)。

        Args:
            unit: 刚刚死亡的单位
            time: 当前战斗时间

        Returns:
            生效的复活技能，未复活返回 None
        """
        if unit.has_revived or unit.is_alive:
            return None
        rng = self.battle.rng
        for caster, skill in self._revive_candidates(unit):
            if not caster.is_ready(skill):
                continue
            if rng.random() >= skill.trigger.chance:
                continue
            caster.start_cooldown(skill)
            unit.revive(skill.revive_hp_percent)
            self.battle.collector.on_revive(time, unit, skill, caster)
            return skill
        return None
