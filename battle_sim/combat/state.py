"""
战斗单位运行时状态
每场战斗为每个单位创建一份全新的可变副本，战斗结束即丢弃
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import Config
from ..models import HotSkill, InvincibleSkill, ReviveSkill, Skill, UnitStats
from .calculator import CombatCalculator

EPS = Config.TIME_EPSILON


class EffectKind(str, Enum):
    """状态效果种类"""
    HOT = "hot"
    INVINCIBLE = "invincible"


@dataclass(eq=False)
class StatusEffect:
    """单个持续状态效果"""
    kind: EffectKind
    source: Skill
    remaining: float                # 剩余持续时间 (秒)
    tick_interval: float = 0.0      # 仅 HoT
    tick_amount: int = 0            # 每跳数值，负数为持续伤害
    ticks_left: int = 0
    tick_accumulator: float = 0.0

    @classmethod
    def hot(cls, skill: HotSkill, caster_max_hp: float) -> "StatusEffect":
        """根据 HoT 技能创建效果，百分比数值以施放者最大 HP 为基准"""
        if skill.hot_type == "percent":
            raw = caster_max_hp * skill.hot_amount
        else:
            raw = skill.hot_amount
        amount = CombatCalculator.round_half_up(raw)
        ticks = int(math.floor(skill.hot_duration / skill.hot_tick_interval + EPS))
        return cls(
            kind=EffectKind.HOT,
            source=skill,
            remaining=skill.hot_duration,
            tick_interval=skill.hot_tick_interval,
            tick_amount=amount,
            ticks_left=ticks,
        )

    @classmethod
    def invincible(cls, skill: InvincibleSkill) -> "StatusEffect":
        return cls(kind=EffectKind.INVINCIBLE, source=skill, remaining=skill.invincible_duration)

    @property
    def skill_name(self) -> str:
        return self.source.name


@dataclass
class CombatUnit:
    """战斗单位运行时状态 (可变)"""
    stats: UnitStats
    side: int                       # 1 或 2
    slot: int                       # 队伍内序号，用于稳定排序
    skills: Sequence[Skill] = field(default_factory=list)
    current_hp: float = 0.0
    cooldowns: Dict[str, float] = field(default_factory=dict)
    effects: List[StatusEffect] = field(default_factory=list)
    attack_timer: float = 0.0
    has_revived: bool = False
    is_alive: bool = True

    # 最近一次普通攻击结果 (on_hit / on_crit 触发器读取，释放技能后清空)
    last_attack_hit: bool = False
    last_attack_crit: bool = False

    # 战斗中曾达到的最低 HP 比例 (逆转分析用)
    min_hp_fraction: float = 1.0

    @classmethod
    def create(cls, stats: UnitStats, side: int, slot: int, skills: Optional[Sequence[Skill]] = None) -> "CombatUnit":
        """从静态属性创建一份新的运行时状态"""
        unit = cls(stats=stats, side=side, slot=slot, skills=list(skills or []))
        unit.current_hp = stats.hp
        unit.cooldowns = {skill.id: 0.0 for skill in unit.skills}
        unit.min_hp_fraction = unit.hp_fraction
        return unit

    # ========== 只读属性 ==========

    @property
    def key(self) -> Tuple[int, int]:
        """(阵营, 序号)，在双方单位 id 重复时仍唯一"""
        return (self.side, self.slot)

    @property
    def name(self) -> str:
        return self.stats.name

    @property
    def max_hp(self) -> float:
        return self.stats.max_hp

    @property
    def hp_fraction(self) -> float:
        return max(0.0, self.current_hp) / self.stats.max_hp

    @property
    def is_invincible(self) -> bool:
        return any(e.kind == EffectKind.INVINCIBLE for e in self.effects)

    def _tradeoff_active(self, attr: str) -> bool:
        for effect in self.effects:
            if effect.kind != EffectKind.INVINCIBLE:
                continue
            tradeoff = getattr(effect.source, "tradeoff", None)
            if tradeoff is not None and getattr(tradeoff, attr):
                return True
        return False

    @property
    def can_attack(self) -> bool:
        return not self._tradeoff_active("cannot_attack")

    @property
    def can_use_skills(self) -> bool:
        return not self._tradeoff_active("cannot_use_skills")

    @property
    def revive_skills(self) -> List[ReviveSkill]:
        return [s for s in self.skills if isinstance(s, ReviveSkill)]

    # ========== 状态变更 ==========

    def tick_cooldowns(self, dt: float) -> None:
        """所有技能冷却减少 dt，最低为 0"""
        for skill_id, remaining in self.cooldowns.items():
            if remaining > 0:
                left = remaining - dt
                self.cooldowns[skill_id] = 0.0 if left <= EPS else left

    def is_ready(self, skill: Skill) -> bool:
        return self.cooldowns.get(skill.id, 0.0) <= EPS

    def start_cooldown(self, skill: Skill) -> None:
        self.cooldowns[skill.id] = skill.cooldown

    def charge_attack(self, dt: float) -> None:
        self.attack_timer += dt

    @property
    def attack_ready(self) -> bool:
        """攻击计时器是否已达到攻击间隔 1 / speed"""
        return self.attack_timer + EPS >= self.stats.attack_interval

    def take_damage(self, amount: float) -> bool:
        """扣除 HP，返回本次是否致死"""
        self.current_hp -= amount
        self._track_min_hp()
        if self.current_hp <= 0:
            self.current_hp = 0.0
            return True
        return False

    def heal(self, amount: float) -> float:
        """恢复 HP (不超过最大值)，返回实际恢复量"""
        before = self.current_hp
        self.current_hp = min(self.stats.max_hp, self.current_hp + amount)
        return self.current_hp - before

    def die(self) -> None:
        self.is_alive = False
        self.current_hp = 0.0
        self.effects.clear()
        self.attack_timer = 0.0
        self.last_attack_hit = False
        self.last_attack_crit = False

    def revive(self, hp_percent: float) -> None:
        self.is_alive = True
        self.has_revived = True
        self.current_hp = float(CombatCalculator.round_half_up(self.stats.max_hp * hp_percent))

    def add_effect(self, effect: StatusEffect) -> None:
        """添加效果；同一技能的旧效果被刷新覆盖"""
        self.effects = [e for e in self.effects if e.source.id != effect.source.id]
        self.effects.append(effect)

    def advance_effects(self, dt: float) -> Tuple[List[StatusEffect], List[StatusEffect]]:
        """推进所有效果 dt 秒。

        Args:
            dt: 时间步长

        Returns:
            (本步触发的 HoT 跳列表, 本步到期的效果列表)；同一效果可能多次出现在跳列表中
        """
        ticks: List[StatusEffect] = []
        expired: List[StatusEffect] = []
        for effect in self.effects:
            effect.remaining -= dt
            if effect.kind == EffectKind.HOT:
                effect.tick_accumulator += dt
                while effect.ticks_left > 0 and effect.tick_accumulator + EPS >= effect.tick_interval:
                    effect.tick_accumulator -= effect.tick_interval
                    effect.ticks_left -= 1
                    ticks.append(effect)
            if effect.remaining <= EPS:
                expired.append(effect)
        if expired:
            self.effects = [e for e in self.effects if e not in expired]
        return ticks, expired

    def _track_min_hp(self) -> None:
        fraction = self.hp_fraction
        if fraction < self.min_hp_fraction:
            self.min_hp_fraction = fraction
