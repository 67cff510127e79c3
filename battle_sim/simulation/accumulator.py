"""
可合并的统计累加器
====================
每个批次 (或进程) 各自累加一个累加器，最后通过 merge() 归并。
计数为精确整数；逐场数值保留为列表，在结算时用 math.fsum 求和，
因此合并顺序不影响结果。样本战斗只保留 run_index 最小的若干场。
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from ..combat.statistics_collector import BattleRecord
from ..config import Config
from ..models import BattleConfig, UnitStats
from ..combat.calculator import CombatCalculator
from .results import (
    BattleReplay, ConfidenceInterval, CritStats, DpsEfficiency, HealingStats,
    Histogram, PerTeam, PerUnit, ReversalAnalysis, SimulationResult,
    SkillUsageStats, TeamHealingStats, TeamResult, TeamUnitStats, TtkStats, UnitOutcome, ValueRange,
)
from .statistics import (
    build_histogram, mean, safe_ratio, ttk_stats, value_range, wilson_interval,
)

DUEL_LABELS = ("unit1", "unit2")
TEAM_LABELS = ("team1", "team2")


def make_replay(run_index: int, seed: int, record: BattleRecord, labels: Tuple[str, str]) -> BattleReplay:
    """将终局记录转换为样本战斗 (日志原样移交)"""
    winner = labels[record.winner - 1] if record.winner else "draw"
    units = [
        UnitOutcome(
            unit_id=u.unit_id,
            name=u.name,
            side=u.side,
            final_hp=u.final_hp,
            damage_dealt=u.damage_dealt,
            damage_taken=u.damage_taken,
            kills=u.kills,
            survived=u.alive,
        )
        for u in record.units
    ]
    return BattleReplay(
        run_index=run_index,
        seed=seed,
        winner=winner,
        duration=record.duration,
        units=units,
        log=record.log or [],
    )


def _wants_sample(samples: Dict[int, BattleReplay], limit: int, run_index: int) -> bool:
    if limit <= 0:
        return False
    return len(samples) < limit or run_index < max(samples)


def _trim_samples(samples: Dict[int, BattleReplay], limit: int) -> Dict[int, BattleReplay]:
    if len(samples) <= limit:
        return samples
    return {index: samples[index] for index in sorted(samples)[:limit]}


@dataclass
class SkillTotals:
    skill_id: str
    skill_name: str
    uses: int = 0
    damage: float = 0.0
    healing: float = 0.0

    def merge(self, other) -> None:
        """并入另一份技能统计 (SkillTotals 或单场的 SkillTally)"""
        self.uses += other.uses
        self.damage += other.damage
        self.healing += other.healing


def fold_skills(into: Dict[str, SkillTotals], tallies: Iterable) -> None:
    """按技能 id 累加技能统计"""
    for tally in tallies:
        totals = into.get(tally.skill_id)
        if totals is None:
            totals = into[tally.skill_id] = SkillTotals(tally.skill_id, tally.skill_name)
        totals.merge(tally)


def skill_usage(skills: Dict[str, SkillTotals], total_damage: float) -> List[SkillUsageStats]:
    """技能统计结算，按技能 id 排序；dps_contribution 为技能伤害占总伤害的比例"""
    return [
        SkillUsageStats(
            skill_id=t.skill_id,
            skill_name=t.skill_name,
            total_uses=t.uses,
            total_damage=t.damage,
            total_healing=t.healing,
            avg_damage_per_use=safe_ratio(t.damage, t.uses),
            dps_contribution=safe_ratio(t.damage, total_damage),
        )
        for t in sorted(skills.values(), key=lambda t: t.skill_id)
    ]


def _pair(factory=list):
    return field(default_factory=lambda: [factory(), factory()])


# ============================================================================
# 1v1 累加器
# ============================================================================

@dataclass
class DuelAccumulator:
    """1v1 战斗统计累加器"""
    sample_limit: int = Config.DEFAULT_SAMPLE_BATTLES

    runs: int = 0
    skipped: int = 0
    wins: List[int] = field(default_factory=lambda: [0, 0])
    draws: int = 0

    durations: List[float] = field(default_factory=list)
    damages: List[List[float]] = _pair()
    dps: List[List[float]] = _pair()
    final_hp: List[List[float]] = _pair()         # 战败记 0，即所有场次的剩余 HP
    ttks: List[List[float]] = _pair()             # 仅获胜场次
    healing: List[List[float]] = _pair()
    crit_damage: List[List[float]] = _pair()

    hits: List[int] = field(default_factory=lambda: [0, 0])
    crits: List[int] = field(default_factory=lambda: [0, 0])
    reversals: List[int] = field(default_factory=lambda: [0, 0])
    crit_reversals: List[int] = field(default_factory=lambda: [0, 0])
    close_matches: int = 0

    skills: List[Dict[str, SkillTotals]] = _pair(dict)
    samples: Dict[int, BattleReplay] = field(default_factory=dict)

    def add(self, run_index: int, seed: int, record: BattleRecord) -> None:
        """折叠一场战斗的终局记录"""
        self.runs += 1
        self.durations.append(record.duration)
        if record.winner is None:
            self.draws += 1
        else:
            self.wins[record.winner - 1] += 1

        units = [record.side_units(1)[0], record.side_units(2)[0]]
        for i, unit in enumerate(units):
            self.damages[i].append(unit.damage_dealt)
            self.dps[i].append(safe_ratio(unit.damage_dealt, record.duration))
            self.final_hp[i].append(unit.final_hp)
            self.healing[i].append(unit.healing_done)
            self.crit_damage[i].append(unit.crit_damage)
            self.hits[i] += unit.hits
            self.crits[i] += unit.crits
            fold_skills(self.skills[i], unit.skills.values())

        if record.winner is not None:
            w = record.winner - 1
            winner = units[w]
            self.ttks[w].append(record.duration)
            if winner.min_hp_fraction <= Config.REVERSAL_HP_THRESHOLD:
                self.reversals[w] += 1
                if record.final_blow_crit:
                    self.crit_reversals[w] += 1

        margin = abs(units[0].final_hp_fraction - units[1].final_hp_fraction)
        if margin <= Config.CLOSE_MATCH_THRESHOLD:
            self.close_matches += 1

        if record.log is not None and _wants_sample(self.samples, self.sample_limit, run_index):
            self.samples[run_index] = make_replay(run_index, seed, record, DUEL_LABELS)
            self.samples = _trim_samples(self.samples, self.sample_limit)

    def add_skipped(self, count: int = 1) -> None:
        self.skipped += count

    def merge(self, other: "DuelAccumulator") -> "DuelAccumulator":
        """将另一个累加器并入自身 (结合律、交换律成立)"""
        self.runs += other.runs
        self.skipped += other.skipped
        self.draws += other.draws
        self.close_matches += other.close_matches
        self.durations.extend(other.durations)
        for i in range(2):
            self.wins[i] += other.wins[i]
            self.hits[i] += other.hits[i]
            self.crits[i] += other.crits[i]
            self.reversals[i] += other.reversals[i]
            self.crit_reversals[i] += other.crit_reversals[i]
            self.damages[i].extend(other.damages[i])
            self.dps[i].extend(other.dps[i])
            self.final_hp[i].extend(other.final_hp[i])
            self.ttks[i].extend(other.ttks[i])
            self.healing[i].extend(other.healing[i])
            self.crit_damage[i].extend(other.crit_damage[i])
            fold_skills(self.skills[i], other.skills[i].values())
        self.samples = _trim_samples({**self.samples, **other.samples}, self.sample_limit)
        return self

    # ========== 结算 ==========

    def _skill_stats(self, i: int) -> List[SkillUsageStats]:
        return skill_usage(self.skills[i], math.fsum(self.damages[i]))

    def to_result(
        self,
        unit1: UnitStats,
        unit2: UnitStats,
        config: BattleConfig,
        requested_runs: int,
        seed: int,
        cancelled: bool = False,
        has_skills: bool = False,
    ) -> SimulationResult:
        """由累加器生成最终结果。

        Args:
            unit1: 单位 1 属性 (理论 DPS 计算用)
            unit2: 单位 2 属性
            config: 战斗配置
            requested_runs: 请求的模拟场数
            seed: 基础随机种子
            cancelled: 是否被提前停止
            has_skills: 任一方带有技能时输出技能/治疗统计

        Returns:
            SimulationResult
        """
        n = self.runs
        theoretical = (
            CombatCalculator.theoretical_dps(unit1, unit2, config),
            CombatCalculator.theoretical_dps(unit2, unit1, config),
        )
        avg_dps = [mean(self.dps[i]) for i in range(2)]

        def efficiency(i: int) -> DpsEfficiency:
            ratio = safe_ratio(avg_dps[i], theoretical[i])
            return DpsEfficiency(
                actual=avg_dps[i],
                theoretical=theoretical[i],
                efficiency=ratio,
                efficiency_loss=theoretical[i] > 0 and ratio < Config.DPS_EFFICIENCY_THRESHOLD,
            )

        def crit_stats(i: int) -> CritStats:
            return CritStats(
                total_crits=self.crits[i],
                total_hits=self.hits[i],
                avg_crit_rate=safe_ratio(self.crits[i], self.hits[i]),
                crit_damage_total=math.fsum(self.crit_damage[i]),
                reversals_by_crit=self.crit_reversals[i],
            )

        healing_stats = None
        skill_stats = None
        if has_skills:
            total_time = math.fsum(self.durations)
            totals = [math.fsum(self.healing[i]) for i in range(2)]
            healing_stats = HealingStats(
                total_healing=PerUnit[float](unit1=totals[0], unit2=totals[1]),
                hps=PerUnit[float](
                    unit1=safe_ratio(totals[0], total_time),
                    unit2=safe_ratio(totals[1], total_time),
                ),
            )
            skill_stats = PerUnit[List[SkillUsageStats]](unit1=self._skill_stats(0), unit2=self._skill_stats(1))

        return SimulationResult(
            requested_runs=requested_runs,
            total_runs=n,
            skipped_runs=self.skipped,
            cancelled=cancelled,
            seed=seed,
            unit1_wins=self.wins[0],
            unit2_wins=self.wins[1],
            draws=self.draws,
            unit1_win_rate=safe_ratio(self.wins[0], n),
            unit2_win_rate=safe_ratio(self.wins[1], n),
            draw_rate=safe_ratio(self.draws, n),
            avg_duration=mean(self.durations),
            min_duration=min(self.durations, default=0.0),
            max_duration=max(self.durations, default=0.0),
            unit1_avg_damage=mean(self.damages[0]),
            unit1_avg_dps=avg_dps[0],
            unit1_avg_survival_hp=mean(self.final_hp[0]),
            unit2_avg_damage=mean(self.damages[1]),
            unit2_avg_dps=avg_dps[1],
            unit2_avg_survival_hp=mean(self.final_hp[1]),
            avg_final_hp=PerUnit[float](unit1=mean(self.final_hp[0]), unit2=mean(self.final_hp[1])),
            duration_distribution=build_histogram(self.durations),
            damage_distribution=PerUnit[Histogram](
                unit1=build_histogram(self.damages[0]), unit2=build_histogram(self.damages[1])
            ),
            damage_range=PerUnit[ValueRange](unit1=value_range(self.damages[0]), unit2=value_range(self.damages[1])),
            win_rate_confidence=PerUnit[ConfidenceInterval](
                unit1=wilson_interval(self.wins[0], n), unit2=wilson_interval(self.wins[1], n)
            ),
            ttk_distribution=PerUnit[Histogram](unit1=build_histogram(self.ttks[0]), unit2=build_histogram(self.ttks[1])),
            ttk_stats=PerUnit[TtkStats](unit1=ttk_stats(self.ttks[0]), unit2=ttk_stats(self.ttks[1])),
            theoretical_dps=PerUnit[float](unit1=theoretical[0], unit2=theoretical[1]),
            dps_efficiency=PerUnit[DpsEfficiency](unit1=efficiency(0), unit2=efficiency(1)),
            crit_stats=PerUnit[CritStats](unit1=crit_stats(0), unit2=crit_stats(1)),
            reversal_analysis=ReversalAnalysis(
                unit1_reversals=self.reversals[0],
                unit2_reversals=self.reversals[1],
                crit_caused_reversals=sum(self.crit_reversals),
                close_matches=self.close_matches,
            ),
            skill_stats=skill_stats,
            healing_stats=healing_stats,
            sample_battles=[self.samples[i] for i in sorted(self.samples)],
        )


# ============================================================================
# 团队战累加器
# ============================================================================

@dataclass
class UnitTotals:
    """团队战中单个单位的跨场累计"""
    unit_id: str
    name: str
    side: int
    survived: int = 0
    kills: int = 0
    mvp: int = 0
    hits: int = 0
    crits: int = 0
    damage_dealt: List[float] = field(default_factory=list)
    damage_taken: List[float] = field(default_factory=list)
    crit_damage: List[float] = field(default_factory=list)
    healing: List[float] = field(default_factory=list)
    skills: Dict[str, SkillTotals] = field(default_factory=dict)

    def merge(self, other: "UnitTotals") -> None:
        self.survived += other.survived
        self.kills += other.kills
        self.mvp += other.mvp
        self.hits += other.hits
        self.crits += other.crits
        self.damage_dealt.extend(other.damage_dealt)
        self.damage_taken.extend(other.damage_taken)
        self.crit_damage.extend(other.crit_damage)
        self.healing.extend(other.healing)
        fold_skills(self.skills, other.skills.values())

    def crit_stats(self) -> CritStats:
        return CritStats(
            total_crits=self.crits,
            total_hits=self.hits,
            avg_crit_rate=safe_ratio(self.crits, self.hits),
            crit_damage_total=math.fsum(self.crit_damage),
        )


@dataclass
class TeamAccumulator:
    """团队战统计累加器"""
    sample_limit: int = Config.DEFAULT_SAMPLE_BATTLES

    runs: int = 0
    skipped: int = 0
    wins: List[int] = field(default_factory=lambda: [0, 0])
    draws: int = 0
    durations: List[float] = field(default_factory=list)
    survivors: List[List[float]] = _pair()
    total_damage: List[List[float]] = _pair()
    units: Dict[Tuple[int, int], UnitTotals] = field(default_factory=dict)
    samples: Dict[int, BattleReplay] = field(default_factory=dict)

    def add(self, run_index: int, seed: int, record: BattleRecord) -> None:
        self.runs += 1
        self.durations.append(record.duration)
        if record.winner is None:
            self.draws += 1
        else:
            self.wins[record.winner - 1] += 1

        for side in (1, 2):
            side_units = record.side_units(side)
            self.survivors[side - 1].append(float(sum(1 for u in side_units if u.alive)))
            self.total_damage[side - 1].append(sum(u.damage_dealt for u in side_units))
            mvp = min(side_units, key=lambda u: (-u.damage_dealt, u.slot))
            for unit in side_units:
                totals = self.units.get(unit.key)
                if totals is None:
                    totals = self.units[unit.key] = UnitTotals(unit.unit_id, unit.name, unit.side)
                totals.survived += int(unit.alive)
                totals.kills += unit.kills
                totals.hits += unit.hits
                totals.crits += unit.crits
                totals.damage_dealt.append(unit.damage_dealt)
                totals.damage_taken.append(unit.damage_taken)
                totals.crit_damage.append(unit.crit_damage)
                totals.healing.append(unit.healing_done)
                fold_skills(totals.skills, unit.skills.values())
                if unit is mvp and unit.damage_dealt > 0:
                    totals.mvp += 1

        if record.log is not None and _wants_sample(self.samples, self.sample_limit, run_index):
            self.samples[run_index] = make_replay(run_index, seed, record, TEAM_LABELS)
            self.samples = _trim_samples(self.samples, self.sample_limit)

    def add_skipped(self, count: int = 1) -> None:
        self.skipped += count

    def merge(self, other: "TeamAccumulator") -> "TeamAccumulator":
        self.runs += other.runs
        self.skipped += other.skipped
        self.draws += other.draws
        self.durations.extend(other.durations)
        for i in range(2):
            self.wins[i] += other.wins[i]
            self.survivors[i].extend(other.survivors[i])
            self.total_damage[i].extend(other.total_damage[i])
        for key, theirs in other.units.items():
            mine = self.units.get(key)
            if mine is None:
                mine = self.units[key] = UnitTotals(theirs.unit_id, theirs.name, theirs.side)
            mine.merge(theirs)
        self.samples = _trim_samples({**self.samples, **other.samples}, self.sample_limit)
        return self

    # ========== 结算 ==========

    def _side_units(self, side: int) -> List[UnitTotals]:
        return [t for key, t in sorted(self.units.items()) if key[0] == side]

    def _side_crit_stats(self, side: int) -> CritStats:
        units = self._side_units(side)
        hits = sum(t.hits for t in units)
        crits = sum(t.crits for t in units)
        return CritStats(
            total_crits=crits,
            total_hits=hits,
            avg_crit_rate=safe_ratio(crits, hits),
            crit_damage_total=math.fsum(d for t in units for d in t.crit_damage),
        )

    def _side_skill_stats(self, side: int) -> List[SkillUsageStats]:
        """同一阵营内按技能 id 合并"""
        skills: Dict[str, SkillTotals] = {}
        for t in self._side_units(side):
            fold_skills(skills, t.skills.values())
        return skill_usage(skills, math.fsum(self.total_damage[side - 1]))

    def to_result(self, requested_runs: int, seed: int, cancelled: bool = False) -> TeamResult:
        """由累加器生成团队战结果。

        HPS = 总治疗量 / 全部场次战斗时长之和。

        Args:
            requested_runs: 请求的模拟场数
            seed: 基础随机种子
            cancelled: 是否被提前停止

        Returns:
            TeamResult
        """
        n = self.runs
        total_time = math.fsum(self.durations)
        unit_stats = []
        for _, t in sorted(self.units.items()):
            healing = math.fsum(t.healing)
            unit_stats.append(TeamUnitStats(
                unit_id=t.unit_id,
                name=t.name,
                team=TEAM_LABELS[t.side - 1],
                survival_rate=safe_ratio(t.survived, n),
                avg_kills=safe_ratio(t.kills, n),
                mvp_count=t.mvp,
                avg_damage_dealt=mean(t.damage_dealt),
                avg_damage_taken=mean(t.damage_taken),
                crit_stats=t.crit_stats(),
                total_healing=healing,
                hps=safe_ratio(healing, total_time),
                skill_stats=skill_usage(t.skills, math.fsum(t.damage_dealt)),
            ))

        side_healing = [
            math.fsum(h for t in self._side_units(side) for h in t.healing) for side in (1, 2)
        ]
        return TeamResult(
            requested_runs=requested_runs,
            total_runs=n,
            skipped_runs=self.skipped,
            cancelled=cancelled,
            seed=seed,
            team1_wins=self.wins[0],
            team2_wins=self.wins[1],
            draws=self.draws,
            team1_win_rate=safe_ratio(self.wins[0], n),
            team2_win_rate=safe_ratio(self.wins[1], n),
            draw_rate=safe_ratio(self.draws, n),
            win_rate_confidence=PerTeam[ConfidenceInterval](
                team1=wilson_interval(self.wins[0], n), team2=wilson_interval(self.wins[1], n)
            ),
            avg_duration=mean(self.durations),
            min_duration=min(self.durations, default=0.0),
            max_duration=max(self.durations, default=0.0),
            duration_distribution=build_histogram(self.durations),
            avg_survivors=PerTeam[float](team1=mean(self.survivors[0]), team2=mean(self.survivors[1])),
            avg_total_damage=PerTeam[float](team1=mean(self.total_damage[0]), team2=mean(self.total_damage[1])),
            crit_stats=PerTeam[CritStats](team1=self._side_crit_stats(1), team2=self._side_crit_stats(2)),
            skill_stats=PerTeam[List[SkillUsageStats]](
                team1=self._side_skill_stats(1), team2=self._side_skill_stats(2)
            ),
            healing_stats=TeamHealingStats(
                total_healing=PerTeam[float](team1=side_healing[0], team2=side_healing[1]),
                hps=PerTeam[float](
                    team1=safe_ratio(side_healing[0], total_time),
                    team2=safe_ratio(side_healing[1], total_time),
                ),
            ),
            unit_stats=unit_stats,
            sample_battles=[self.samples[i] for i in sorted(self.samples)],
        )
