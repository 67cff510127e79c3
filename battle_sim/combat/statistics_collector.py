"""
单场战斗统计收集器
====================
功能：接收战斗引擎发出的事件，累计每个单位的伤害、命中、技能与治疗数据，并维护战斗日志
设计原则：
  - 事件驱动：只记录事件，不干预战斗流程
  - 所有权：日志缓冲区只属于当前战斗，结算时整体移交给 BattleRecord
  - 键值：单位以 (阵营, 序号) 区分，双方可使用相同的 id / 名称
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..models import BattleLogEntry, LogAction, Skill
from .resolver import AttackOutcome
from .state import CombatUnit

UnitKey = Tuple[int, int]


@dataclass
class SkillTally:
    """单个技能在一场战斗中的使用统计"""
    skill_id: str
    skill_name: str
    uses: int = 0
    damage: float = 0.0
    healing: float = 0.0


@dataclass
class UnitRecord:
    """单个单位在一场战斗结束时的统计"""
    side: int
    slot: int
    unit_id: str
    name: str
    max_hp: float
    damage_dealt: float = 0.0       # 含溢出伤害
    damage_taken: float = 0.0
    final_hp: float = 0.0
    min_hp_fraction: float = 1.0
    attacks: int = 0
    hits: int = 0
    crits: int = 0
    misses: int = 0
    crit_damage: float = 0.0        # 暴击造成的伤害总量
    kills: int = 0
    healing_done: float = 0.0
    deaths: int = 0
    revived: bool = False
    alive: bool = True
    skills: Dict[str, SkillTally] = field(default_factory=dict)

    @property
    def key(self) -> UnitKey:
        return (self.side, self.slot)

    @property
    def final_hp_fraction(self) -> float:
        return self.final_hp / self.max_hp if self.max_hp > 0 else 0.0


@dataclass
class BattleRecord:
    """单场战斗的终局记录"""
    winner: Optional[int]            # 1 / 2，平局为 None
    duration: float
    units: List[UnitRecord]
    final_blow_crit: bool = False
    log: Optional[List[BattleLogEntry]] = None

    def side_units(self, side: int) -> List[UnitRecord]:
        return [u for u in self.units if u.side == side]


class StatisticsCollector:
    """战斗统计收集器 - 事件驱动

    由 BattleSimulator 在每个动作发生时调用 on_* 方法。
    record_log 为 False 时只累计数值，不构造日志对象。
    """

    def __init__(self, units: Sequence[CombatUnit], record_log: bool = False):
        """初始化统计收集器

        Args:
            units: 参战双方全部单位
            record_log: 是否记录完整战斗日志 (内存消耗较大，仅样本战斗开启)
        """
        self.record_log = record_log
        self.log: List[BattleLogEntry] = []
        self.final_blow_crit = False
        self.records: Dict[UnitKey, UnitRecord] = {
            u.key: UnitRecord(
                side=u.side,
                slot=u.slot,
                unit_id=u.stats.id,
                name=u.name,
                max_hp=u.max_hp,
                final_hp=u.current_hp,
            )
            for u in units
        }

    def _append(self, time: float, actor: CombatUnit, action: LogAction, **fields) -> None:
        if self.record_log:
            self.log.append(BattleLogEntry(time=time, actor=actor.name, action=action, **fields))

    def _tally(self, unit: CombatUnit, skill: Skill) -> SkillTally:
        skills = self.records[unit.key].skills
        if skill.id not in skills:
            skills[skill.id] = SkillTally(skill_id=skill.id, skill_name=skill.name)
        return skills[skill.id]

    # ========== 攻击与伤害 ==========

    def on_attack(
        self,
        time: float,
        attacker: CombatUnit,
        target: CombatUnit,
        outcome: AttackOutcome,
        damage: int,
    ) -> None:
        """记录一次普通攻击 (damage 为实际施加的伤害，无敌时为 0)"""
        rec = self.records[attacker.key]
        rec.attacks += 1
        if outcome.is_miss:
            rec.misses += 1
        else:
            rec.hits += 1
            if outcome.is_crit:
                rec.crits += 1
                rec.crit_damage += damage
        rec.damage_dealt += damage
        self.records[target.key].damage_taken += damage
        self._append(
            time, attacker, LogAction.ATTACK,
            target=target.name,
            damage=damage,
            is_crit=outcome.is_crit,
            is_miss=outcome.is_miss,
            remaining_hp=target.current_hp,
        )

    def on_skill_cast(self, time: float, caster: CombatUnit, skill: Skill) -> None:
        self._tally(caster, skill).uses += 1

    def on_skill_damage(
        self,
        time: float,
        caster: CombatUnit,
        target: CombatUnit,
        skill: Skill,
        damage: int,
    ) -> None:
        self._tally(caster, skill).damage += damage
        self.records[caster.key].damage_dealt += damage
        self.records[target.key].damage_taken += damage
        self._append(
            time, caster, LogAction.SKILL,
            target=target.name,
            damage=damage,
            skill_name=skill.name,
            remaining_hp=target.current_hp,
        )

    # ========== 治疗与状态 ==========

    def on_heal(
        self,
        time: float,
        caster: CombatUnit,
        target: CombatUnit,
        skill: Skill,
        amount: float,
        action: LogAction = LogAction.HEAL,
    ) -> None:
        """记录治疗 (amount 为实际恢复量)"""
        self._tally(caster, skill).healing += amount
        self.records[caster.key].healing_done += amount
        self._append(
            time, caster, action,
            target=target.name if target is not caster else None,
            skill_name=skill.name,
            heal_amount=amount,
            remaining_hp=target.current_hp,
        )

    def on_dot_tick(self, time: float, unit: CombatUnit, skill: Skill, damage: float) -> None:
        """持续伤害跳 (负数 HoT)，计入承受伤害"""
        self.records[unit.key].damage_taken += damage
        self._append(
            time, unit, LogAction.HOT_TICK,
            skill_name=skill.name,
            heal_amount=-damage,
            remaining_hp=unit.current_hp,
        )

    def on_effect_start(self, time: float, unit: CombatUnit, skill: Skill, action: LogAction) -> None:
        self._append(time, unit, action, skill_name=skill.name, remaining_hp=unit.current_hp)

    def on_effect_end(self, time: float, unit: CombatUnit, skill: Skill, action: LogAction) -> None:
        self._append(time, unit, action, skill_name=skill.name, remaining_hp=unit.current_hp)

    # ========== 死亡与复活 ==========

    def on_death(
        self,
        time: float,
        unit: CombatUnit,
        killer: Optional[CombatUnit],
        by_crit: bool = False,
    ) -> None:
        self.records[unit.key].deaths += 1
        if killer is not None and killer.side != unit.side:
            self.records[killer.key].kills += 1
        self.final_blow_crit = by_crit
        self._append(time, unit, LogAction.DEATH, remaining_hp=0.0)

    def on_revive(self, time: float, unit: CombatUnit, skill: Skill, caster: CombatUnit) -> None:
        self._tally(caster, skill).uses += 1
        self.records[unit.key].revived = True
        self._append(
            time, unit, LogAction.REVIVE,
            skill_name=skill.name,
            remaining_hp=unit.current_hp,
        )

    # ========== 结算 ==========

    def finalize_battle(
        self,
        winner: Optional[int],
        duration: float,
        units: Sequence[CombatUnit],
    ) -> BattleRecord:
        """结算战斗统计

        Args:
            winner: 获胜阵营 (1/2)，平局为 None
            duration: 战斗时长 (秒)
            units: 战斗结束时的全部单位状态

        Returns:
            BattleRecord: 终局记录，日志缓冲区随之移交
        """
        for unit in units:
            rec = self.records[unit.key]
            rec.final_hp = max(0.0, unit.current_hp) if unit.is_alive else 0.0
            rec.alive = unit.is_alive
            rec.min_hp_fraction = unit.min_hp_fraction
        log = self.log if self.record_log else None
        self.log = []
        return BattleRecord(
            winner=winner,
            duration=duration,
            units=[self.records[u.key] for u in units],
            final_blow_crit=self.final_blow_crit,
            log=log,
        )
