"""
Trigger Checker System
处理技能触发条件的检查逻辑
"""

import random
from typing import Callable, Dict

from ..combat.state import CombatUnit
from ..models import Skill, SkillTrigger, TriggerType


def _check_always(trigger: SkillTrigger, owner: CombatUnit) -> bool:
    return True


def _check_hp_below(trigger: SkillTrigger, owner: CombatUnit) -> bool:
    """HP 比例 <= 阈值"""
    return owner.hp_fraction <= trigger.value


def _check_hp_above(trigger: SkillTrigger, owner: CombatUnit) -> bool:
    """HP 比例 >= 阈值"""
    return owner.hp_fraction >= trigger.value


def _check_on_hit(trigger: SkillTrigger, owner: CombatUnit) -> bool:
    """上一次普通攻击命中"""
    return owner.last_attack_hit


def _check_on_crit(trigger: SkillTrigger, owner: CombatUnit) -> bool:
    """上一次普通攻击暴击"""
    return owner.last_attack_crit


_TRIGGER_CHECKERS: Dict[TriggerType, Callable[[SkillTrigger, CombatUnit], bool]] = {
    TriggerType.ALWAYS: _check_always,
    TriggerType.HP_BELOW: _check_hp_below,
    TriggerType.HP_ABOVE: _check_hp_above,
    TriggerType.ON_HIT: _check_on_hit,
    TriggerType.ON_CRIT: _check_on_crit,
}


class TriggerChecker:
    """触发条件检查器"""

    @staticmethod
    def condition_met(trigger: SkillTrigger, owner: CombatUnit) -> bool:
        """检查触发条件本身 (不掷概率)。

        Args:
            trigger: 技能触发配置
            owner: 技能持有者

        Returns:
            条件满足返回 True
        """
        checker_func = _TRIGGER_CHECKERS.get(trigger.type)
        return checker_func(trigger, owner) if checker_func else False

    @staticmethod
    def can_trigger(skill: Skill, owner: CombatUnit, rng: random.Random) -> bool:
        """技能是否可以在本步释放。

        依次检查: 冷却完毕 -> 触发条件成立 -> 概率判定 random() < chance。
        只有前两项通过才消耗一次随机数。

        Args:
            skill: 技能定义
            owner: 技能持有者
            rng: 本场战斗的随机数生成器

        Returns:
            可以释放返回 True
        """
        if not owner.is_ready(skill):
            return False
        if not TriggerChecker.condition_met(skill.trigger, owner):
            return False
        return rng.random() < skill.trigger.chance
