"""
战斗引擎
按时间步推进单场战斗 (1v1 与团队战共用)，直到一方全灭或达到最大时长
"""

import math
import random
from typing import List, Optional, Sequence

from ..config import Config
from ..models import BattleConfig, LogAction, Skill, TargetingMode, UnitStats
from ..skill_system.processor import SkillProcessor
from .resolver import AttackResolver
from .state import CombatUnit, EffectKind, StatusEffect
from .statistics_collector import BattleRecord, StatisticsCollector
from .targeting import TargetSelector

EPS = Config.TIME_EPSILON


class BattleSimulator:
    """单场战斗模拟器

    每个实例只运行一场战斗，所有随机数来自构造时传入的 rng。
    """

    def __init__(
        self,
        team1: Sequence[UnitStats],
        team2: Sequence[UnitStats],
        config: BattleConfig,
        rng: random.Random,
        skills1: Optional[Sequence[Sequence[Skill]]] = None,
        skills2: Optional[Sequence[Sequence[Skill]]] = None,
        record_log: bool = False,
    ) -> None:
        """初始化战斗。

        Args:
            team1: 阵营 1 的单位属性 (1v1 时只有一个)
            team2: 阵营 2 的单位属性
            config: 战斗配置 (BattleConfig 或 TeamBattleConfig)
            rng: 本场战斗独占的随机数生成器
            skills1: 与 team1 按下标对应的技能列表
            skills2: 与 team2 按下标对应的技能列表
            record_log: 是否记录完整战斗日志
        """
        if not team1 or not team2:
            raise ValueError("双方都至少需要一个单位")
        self.config = config
        self.rng = rng
        self.dt = config.time_step
        self.team1: List[CombatUnit] = self._build_team(1, team1, skills1)
        self.team2: List[CombatUnit] = self._build_team(2, team2, skills2)
        self.units: List[CombatUnit] = self.team1 + self.team2

        mode = getattr(config, "targeting_mode", TargetingMode.RANDOM)
        self.selector = TargetSelector(mode, rng)
        self.collector = StatisticsCollector(self.units, record_log=record_log)
        self.processor = SkillProcessor(self)
        self.time = 0.0

    @staticmethod
    def _build_team(
        side: int,
        stats: Sequence[UnitStats],
        skills: Optional[Sequence[Sequence[Skill]]],
    ) -> List[CombatUnit]:
        team = []
        for slot, unit_stats in enumerate(stats):
            unit_skills = skills[slot] if skills is not None and slot < len(skills) else []
            team.append(CombatUnit.create(unit_stats, side, slot, unit_skills))
        return team

    # ========== 阵营查询 ==========

    def allies_of(self, unit: CombatUnit) -> List[CombatUnit]:
        return self.team1 if unit.side == 1 else self.team2

    def enemies_of(self, unit: CombatUnit) -> List[CombatUnit]:
        return self.team2 if unit.side == 1 else self.team1

    def _winner(self) -> Optional[int]:
        """一方全灭时返回获胜阵营，否则返回 None"""
        if not any(u.is_alive for u in self.team2):
            return 1
        if not any(u.is_alive for u in self.team1):
            return 2
        return None

    # ========== 主循环 ==========

    def run_battle(self) -> BattleRecord:
        """运行整场战斗直到终局。

        每个时间步:
        1. t += timeStep
        2. 存活单位按速度降序行动 (同速时每步随机排序)
        3. 每个单位行动后立即检查终局，先被全灭的一方判负

        Returns:
            BattleRecord: 终局记录
        """
        n_ticks = max(1, math.ceil(self.config.max_duration / self.dt - EPS))
        winner: Optional[int] = None
        tick = 0
        while winner is None and tick < n_ticks:
            tick += 1
            self.time = round(tick * self.dt, 9)
            for unit in self._turn_order():
                if not unit.is_alive:
                    continue
                self._take_turn(unit)
                winner = self._winner()
                if winner is not None:
                    break

        return self.collector.finalize_battle(winner, self.time, self.units)

    def _turn_order(self) -> List[CombatUnit]:
        """本步行动顺序: 速度降序，同速由随机数决定"""
        keyed = [(-u.stats.speed, self.rng.random(), u) for u in self.units if u.is_alive]
        keyed.sort(key=lambda item: (item[0], item[1]))
        return [item[2] for item in keyed]

    def _take_turn(self, unit: CombatUnit) -> None:
        """单个单位在一个时间步内的行动"""
        unit.tick_cooldowns(self.dt)
        self._advance_effects(unit)
        if not unit.is_alive:
            return

        unit.charge_attack(self.dt)
        if self.processor.try_cast(unit, self.time):
            return
        if not unit.attack_ready:
            return

        unit.attack_timer = 0.0
        if not unit.can_attack:
            return
        target = self.selector.select(unit, self.enemies_of(unit))
        if target is not None:
            self._basic_attack(unit, target)

    # ========== 效果推进 ==========

    def _advance_effects(self, unit: CombatUnit) -> None:
        """推进 HoT / 无敌效果，负数 HoT 可以致死"""
        if not unit.effects:
            return
        ticks, expired = unit.advance_effects(self.dt)
        for effect in ticks:
            self._apply_effect_tick(unit, effect)
            if not unit.is_alive:
                return
        for effect in expired:
            action = LogAction.HOT_END if effect.kind == EffectKind.HOT else LogAction.INVINCIBLE_END
            self.collector.on_effect_end(self.time, unit, effect.source, action)

    def _apply_effect_tick(self, unit: CombatUnit, effect: StatusEffect) -> None:
        amount = effect.tick_amount
        if amount >= 0:
            healed = unit.heal(amount)
            self.collector.on_heal(self.time, unit, unit, effect.source, healed, action=LogAction.HOT_TICK)
            return
        damage = 0 if unit.is_invincible else -amount
        died = unit.take_damage(damage)
        self.collector.on_dot_tick(self.time, unit, effect.source, damage)
        if died:
            self._handle_death(unit, killer=None, by_crit=False)

    # ========== 伤害结算 ==========

    def _basic_attack(self, attacker: CombatUnit, target: CombatUnit) -> None:
        outcome = AttackResolver.resolve_attack(attacker.stats, target.stats, self.config, self.rng)
        attacker.last_attack_hit = not outcome.is_miss
        attacker.last_attack_crit = outcome.is_crit

        damage = 0 if target.is_invincible else outcome.damage
        died = target.take_damage(damage) if damage > 0 else False
        self.collector.on_attack(self.time, attacker, target, outcome, damage)
        if died:
            self._handle_death(target, killer=attacker, by_crit=outcome.is_crit)

    def apply_skill_damage(
        self,
        caster: CombatUnit,
        target: CombatUnit,
        skill: Skill,
        damage: int,
        time: float,
    ) -> None:
        """技能伤害结算 (无敌目标伤害为 0)"""
        if target.is_invincible:
            damage = 0
        died = target.take_damage(damage) if damage > 0 else False
        self.collector.on_skill_damage(time, caster, target, skill, damage)
        if died:
            self._handle_death(target, killer=caster, by_crit=False)

    def _handle_death(self, unit: CombatUnit, killer: Optional[CombatUnit], by_crit: bool) -> None:
        """死亡: 记录 death，随后立即检查复活"""
        unit.die()
        self.collector.on_death(self.time, unit, killer, by_crit)
        self.processor.try_revive(unit, self.time)
