"""
蒙特卡洛结果模型
所有结果均为可 JSON 序列化的 Pydantic 模型，model_dump(by_alias=True) 输出 camelCase
"""

from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..models import BattleLogEntry

T = TypeVar("T")


class _ResultModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class PerUnit(_ResultModel, Generic[T]):
    """1v1 中双方各一份的统计"""
    unit1: T
    unit2: T


class PerTeam(_ResultModel, Generic[T]):
    """团队战中双方各一份的统计"""
    team1: T
    team2: T


# ============================================================================
# 基础统计块
# ============================================================================

class ConfidenceInterval(_ResultModel):
    lower: float
    upper: float


class Histogram(_ResultModel):
    """固定分箱直方图，覆盖观测值 [min, max]"""
    bins: List[int]
    min: float = 0.0
    max: float = 0.0
    bin_width: float = 0.0

    @property
    def total(self) -> int:
        return sum(self.bins)


class ValueRange(_ResultModel):
    min: float = 0.0
    max: float = 0.0


class TtkStats(_ResultModel):
    """击杀耗时统计 (只统计获胜场次)"""
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    median: float = 0.0
    wins: int = 0
    has_wins: bool = False      # 无胜场时各项为 0


class CritStats(_ResultModel):
    total_crits: int = 0
    total_hits: int = 0
    avg_crit_rate: float = 0.0
    crit_damage_total: float = 0.0
    reversals_by_crit: int = 0


class DpsEfficiency(_ResultModel):
    actual: float = 0.0
    theoretical: float = 0.0
    efficiency: float = 0.0
    efficiency_loss: bool = False


class ReversalAnalysis(_ResultModel):
    unit1_reversals: int = 0
    unit2_reversals: int = 0
    crit_caused_reversals: int = 0
    close_matches: int = 0


class SkillUsageStats(_ResultModel):
    skill_id: str
    skill_name: str
    total_uses: int = 0
    total_damage: float = 0.0
    total_healing: float = 0.0
    avg_damage_per_use: float = 0.0
    dps_contribution: float = 0.0      # 技能伤害占所属单位 (阵营统计时为整个阵营) 总伤害的比例


class HealingStats(_ResultModel):
    total_healing: PerUnit[float]
    hps: PerUnit[float]


class TeamHealingStats(_ResultModel):
    """团队战阵营治疗统计"""
    total_healing: PerTeam[float]
    hps: PerTeam[float]


# ============================================================================
# 样本战斗
# ============================================================================

class UnitOutcome(_ResultModel):
    """单场战斗中单个单位的终局数据"""
    unit_id: str
    name: str
    side: int
    final_hp: float
    damage_dealt: float
    damage_taken: float
    kills: int = 0
    survived: bool = True


class BattleReplay(_ResultModel):
    """样本战斗: 终局数据与完整日志"""
    run_index: int
    seed: int
    winner: str                     # unit1 / unit2 / team1 / team2 / draw
    duration: float
    units: List[UnitOutcome]
    log: List[BattleLogEntry] = Field(default_factory=list)

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json", by_alias=True, exclude={"log"})
        data["log"] = [entry.to_dict() for entry in self.log]
        return data


# ============================================================================
# 汇总结果
# ============================================================================

class _RunSummary(_ResultModel):
    requested_runs: int
    total_runs: int                 # 实际计入统计的场数
    skipped_runs: int = 0
    cancelled: bool = False
    seed: int


class SimulationResult(_RunSummary):
    """1v1 蒙特卡洛结果"""
    unit1_wins: int
    unit2_wins: int
    draws: int
    unit1_win_rate: float
    unit2_win_rate: float
    draw_rate: float

    avg_duration: float
    min_duration: float
    max_duration: float

    unit1_avg_damage: float
    unit1_avg_dps: float
    unit1_avg_survival_hp: float     # 所有场次的剩余 HP 均值 (战败计 0)
    unit2_avg_damage: float
    unit2_avg_dps: float
    unit2_avg_survival_hp: float
    avg_final_hp: PerUnit[float]

    duration_distribution: Histogram
    damage_distribution: PerUnit[Histogram]
    damage_range: PerUnit[ValueRange]
    win_rate_confidence: PerUnit[ConfidenceInterval]
    ttk_distribution: PerUnit[Histogram]
    ttk_stats: PerUnit[TtkStats]
    theoretical_dps: PerUnit[float]
    dps_efficiency: PerUnit[DpsEfficiency]
    crit_stats: PerUnit[CritStats]
    reversal_analysis: ReversalAnalysis
    skill_stats: Optional[PerUnit[List[SkillUsageStats]]] = None
    healing_stats: Optional[HealingStats] = None
    sample_battles: List[BattleReplay] = Field(default_factory=list)

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json", by_alias=True, exclude={"sample_battles"})
        data["sampleBattles"] = [b.to_dict() for b in self.sample_battles]
        return data


class TeamUnitStats(_ResultModel):
    unit_id: str
    name: str
    team: str                       # team1 / team2
    survival_rate: float
    avg_kills: float
    mvp_count: int
    avg_damage_dealt: float
    avg_damage_taken: float
    crit_stats: CritStats = Field(default_factory=CritStats)
    total_healing: float = 0.0
    hps: float = 0.0
    skill_stats: List[SkillUsageStats] = Field(default_factory=list)


class TeamResult(_RunSummary):
    """团队战蒙特卡洛结果"""
    team1_wins: int
    team2_wins: int
    draws: int
    team1_win_rate: float
    team2_win_rate: float
    draw_rate: float
    win_rate_confidence: PerTeam[ConfidenceInterval]

    avg_duration: float
    min_duration: float
    max_duration: float
    duration_distribution: Histogram

    avg_survivors: PerTeam[float]
    avg_total_damage: PerTeam[float]
    crit_stats: PerTeam[CritStats]
    skill_stats: PerTeam[List[SkillUsageStats]]     # 同阵营按技能 id 合并
    healing_stats: TeamHealingStats
    unit_stats: List[TeamUnitStats]
    sample_battles: List[BattleReplay] = Field(default_factory=list)

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json", by_alias=True, exclude={"sample_battles"})
        data["sampleBattles"] = [b.to_dict() for b in self.sample_battles]
        return data
