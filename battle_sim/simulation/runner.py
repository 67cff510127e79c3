"""
蒙特卡洛执行器
====================
将 N 场独立战斗切分为批次，在本进程或进程池中执行，并归并各批次的累加器。
- 第 i 场战斗使用 random.Random(seed + i)，结果只取决于 (输入, seed)
- 进度回调每完成一个批次调用一次
- 停止请求与墙钟预算在批次之间检查，已完成的批次全部计入结果
"""

import asyncio
import concurrent.futures
import logging
import math
import random
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..combat.engine import BattleSimulator
from ..combat.statistics_collector import BattleRecord
from ..config import Config
from ..models import (
    BattleConfig, SimulationOptions, Skill, TeamBattleConfig, UnitStats, parse_skills,
)
from .accumulator import DuelAccumulator, TeamAccumulator
from .results import SimulationResult, TeamResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
StopCallback = Callable[[], bool]
AccumulatorType = Union[DuelAccumulator, TeamAccumulator]

DUEL = "duel"
TEAM = "team"


# ============================================================================
# 批次任务 (可 pickle，供进程池使用)
# ============================================================================

@dataclass(frozen=True)
class BatchJob:
    """一个批次的全部输入"""
    kind: str
    team1: Tuple[UnitStats, ...]
    team2: Tuple[UnitStats, ...]
    skills1: Tuple[Tuple[Skill, ...], ...]
    skills2: Tuple[Tuple[Skill, ...], ...]
    config: BattleConfig
    base_seed: int
    sample_limit: int = 0
    start: int = 0
    size: int = 0


def simulate_once(job: BatchJob, run_index: int) -> BattleRecord:
    """运行第 run_index 场战斗 (纯函数: 同样的输入与种子得到同样的记录)"""
    rng = random.Random(job.base_seed + run_index)
    battle = BattleSimulator(
        job.team1,
        job.team2,
        job.config,
        rng,
        skills1=job.skills1,
        skills2=job.skills2,
        record_log=run_index < job.sample_limit,
    )
    return battle.run_battle()


def new_accumulator(job: BatchJob) -> AccumulatorType:
    if job.kind == TEAM:
        return TeamAccumulator(sample_limit=job.sample_limit)
    return DuelAccumulator(sample_limit=job.sample_limit)


def run_batch(job: BatchJob) -> AccumulatorType:
    """执行一个批次并返回其累加器。

    单场战斗 (模拟或折叠) 抛出的异常会被记录并计入 skipped，不影响同批次其他战斗。

    Args:
        job: 批次任务

    Returns:
        该批次的累加器
    """
    acc = new_accumulator(job)
    for run_index in range(job.start, job.start + job.size):
        try:
            record = simulate_once(job, run_index)
            # 先折叠到单场累加器，成功后再并入，失败时不留下半条记录
            single = new_accumulator(job)
            single.add(run_index, job.base_seed + run_index, record)
        except Exception:
            logger.warning("第 %d 场战斗计算失败，已跳过", run_index, exc_info=True)
            acc.add_skipped()
            continue
        acc.merge(single)
    return acc


# ============================================================================
# 批次划分
# ============================================================================

def resolve_worker_count(max_workers: Optional[int]) -> int:
    if max_workers is not None:
        return max(1, int(max_workers))
    return 1


def resolve_batch_size(runs: int, workers: int, batch_size: Optional[int] = None) -> int:
    """批次大小: 显式指定优先，否则按每个 worker 约 4 个批次估算"""
    if batch_size is not None:
        return max(1, batch_size)
    per_worker = math.ceil(runs / (workers * 4))
    return max(1, min(Config.DEFAULT_BATCH_SIZE, max(Config.MIN_BATCH_SIZE, per_worker)))


def build_batches(runs: int, batch_size: int) -> List[Tuple[int, int]]:
    """[(起始下标, 场数), ...]"""
    batches: List[Tuple[int, int]] = []
    start_index = 0
    while start_index < runs:
        size = min(batch_size, runs - start_index)
        batches.append((start_index, size))
        start_index += size
    return batches


def _chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


# ============================================================================
# 执行器
# ============================================================================

class MonteCarloRunner:
    """蒙特卡洛执行器

    workers > 1 时以 workers 个批次为一波提交到进程池，每波结束后检查停止条件。
    """

    def __init__(
        self,
        template: BatchJob,
        runs: int,
        workers: int = 1,
        batch_size: Optional[int] = None,
        time_budget: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
        should_stop: Optional[StopCallback] = None,
    ) -> None:
        if runs < 1:
            raise ValueError("runs 必须 >= 1")
        self.template = template
        self.runs = runs
        self.workers = resolve_worker_count(workers)
        self.batch_size = resolve_batch_size(runs, self.workers, batch_size)
        self.time_budget = time_budget
        self.on_progress = on_progress
        self.should_stop = should_stop

        self.completed = 0
        self.cancelled = False
        self._started_at = 0.0

    def jobs(self) -> List[BatchJob]:
        return [
            replace(self.template, start=start, size=size)
            for start, size in build_batches(self.runs, self.batch_size)
        ]

    def _stop_requested(self) -> bool:
        if self.should_stop is not None and self.should_stop():
            logger.info("收到停止请求，已完成 %d/%d 场", self.completed, self.runs)
            return True
        if self.time_budget is not None and time.monotonic() - self._started_at >= self.time_budget:
            logger.info("超出时间预算 %.2fs，已完成 %d/%d 场", self.time_budget, self.completed, self.runs)
            return True
        return False

    def _batch_done(self, total: AccumulatorType, part: AccumulatorType, job: BatchJob) -> None:
        total.merge(part)
        self.completed += job.size
        if self.on_progress is not None:
            self.on_progress(self.completed * 100.0 / self.runs)

    def run(self) -> AccumulatorType:
        """同步执行全部批次，返回归并后的累加器"""
        jobs = self.jobs()
        total = new_accumulator(self.template)
        self._started_at = time.monotonic()
        logger.debug("调度 %d 个批次 (batch_size=%d, workers=%d)", len(jobs), self.batch_size, self.workers)

        if self.workers < 2 or len(jobs) < 2:
            for job in jobs:
                if self._stop_requested():
                    self.cancelled = True
                    break
                self._batch_done(total, run_batch(job), job)
            return total

        with concurrent.futures.ProcessPoolExecutor(max_workers=self.workers) as executor:
            for wave in _chunked(jobs, self.workers):
                if self._stop_requested():
                    self.cancelled = True
                    break
                futures = [executor.submit(run_batch, job) for job in wave]
                for job, future in zip(wave, futures):
                    self._batch_done(total, future.result(), job)
        return total

    async def run_async(self) -> AccumulatorType:
        """异步执行: 批次在工作线程 (或进程池) 中运行，事件循环在批次之间保持响应"""
        jobs = self.jobs()
        total = new_accumulator(self.template)
        self._started_at = time.monotonic()
        loop = asyncio.get_running_loop()
        logger.debug("异步调度 %d 个批次 (batch_size=%d, workers=%d)", len(jobs), self.batch_size, self.workers)

        if self.workers < 2 or len(jobs) < 2:
            for job in jobs:
                if self._stop_requested():
                    self.cancelled = True
                    break
                part = await asyncio.to_thread(run_batch, job)
                self._batch_done(total, part, job)
            return total

        with concurrent.futures.ProcessPoolExecutor(max_workers=self.workers) as executor:
            for wave in _chunked(jobs, self.workers):
                if self._stop_requested():
                    self.cancelled = True
                    break
                parts = await asyncio.gather(
                    *(loop.run_in_executor(executor, run_batch, job) for job in wave)
                )
                for job, part in zip(wave, parts):
                    self._batch_done(total, part, job)
        return total


# ============================================================================
# 输入规范化
# ============================================================================

def _as_unit(unit: Union[UnitStats, Mapping[str, Any]]) -> UnitStats:
    return unit if isinstance(unit, UnitStats) else UnitStats.model_validate(unit)


def _as_team(team: Sequence[Union[UnitStats, Mapping[str, Any]]], label: str) -> Tuple[UnitStats, ...]:
    units = tuple(_as_unit(u) for u in team)
    if not units:
        raise ValueError(f"{label} 不能为空")
    seen = set()
    for unit in units:
        if unit.id in seen:
            raise ValueError(f"{label} 中存在重复的单位 id: {unit.id}")
        seen.add(unit.id)
    return units


def _team_skills(
    team: Sequence[UnitStats],
    skills: Optional[Mapping[str, Sequence[Any]]],
) -> Tuple[Tuple[Skill, ...], ...]:
    skills = skills or {}
    known = {u.id for u in team}
    unknown = set(skills) - known
    if unknown:
        raise ValueError(f"技能映射中存在未知的单位 id: {sorted(unknown)}")
    return tuple(tuple(parse_skills(skills.get(u.id))) for u in team)


def _as_options(options: Union[SimulationOptions, Mapping[str, Any], None]) -> SimulationOptions:
    if options is None:
        return SimulationOptions()
    if isinstance(options, SimulationOptions):
        return options
    return SimulationOptions.model_validate(options)


def _as_team_config(config: Union[BattleConfig, Mapping[str, Any], None]) -> TeamBattleConfig:
    if config is None:
        return TeamBattleConfig()
    if isinstance(config, TeamBattleConfig):
        return config
    if isinstance(config, BattleConfig):
        return TeamBattleConfig.model_validate(config.model_dump())
    return TeamBattleConfig.model_validate(config)


def _resolve_seed(seed: Optional[int]) -> int:
    if seed is not None:
        return seed
    return random.SystemRandom().randrange(2 ** 31)


# ============================================================================
# 1v1 入口
# ============================================================================

def _prepare_duel(
    unit1, unit2, skills1, skills2, options
) -> Tuple[BatchJob, SimulationOptions, UnitStats, UnitStats, bool, Dict[str, Any]]:
    opts = _as_options(options)
    u1 = _as_unit(unit1)
    u2 = _as_unit(unit2)
    s1 = tuple(parse_skills(skills1))
    s2 = tuple(parse_skills(skills2))
    template = BatchJob(
        kind=DUEL,
        team1=(u1,),
        team2=(u2,),
        skills1=(s1,),
        skills2=(s2,),
        config=opts.config,
        base_seed=_resolve_seed(opts.seed),
        sample_limit=min(opts.save_sample_battles, opts.runs),
    )
    runner_kwargs = dict(
        runs=opts.runs,
        workers=opts.workers,
        batch_size=opts.batch_size,
        time_budget=opts.time_budget,
    )
    return template, opts, u1, u2, bool(s1 or s2), runner_kwargs


def _duel_result(
    acc: DuelAccumulator,
    runner: MonteCarloRunner,
    opts: SimulationOptions,
    u1: UnitStats,
    u2: UnitStats,
    has_skills: bool,
) -> SimulationResult:
    if acc.skipped:
        logger.warning("共有 %d 场战斗被跳过", acc.skipped)
    return acc.to_result(
        u1, u2, opts.config,
        requested_runs=opts.runs,
        seed=runner.template.base_seed,
        cancelled=runner.cancelled,
        has_skills=has_skills,
    )


def run_simulation(
    unit1: Union[UnitStats, Mapping[str, Any]],
    unit2: Union[UnitStats, Mapping[str, Any]],
    skills1: Optional[Sequence[Any]] = None,
    skills2: Optional[Sequence[Any]] = None,
    options: Union[SimulationOptions, Mapping[str, Any], None] = None,
    on_progress: Optional[ProgressCallback] = None,
    should_stop: Optional[StopCallback] = None,
) -> SimulationResult:
    """1v1 蒙特卡洛模拟。

    Args:
        unit1: 单位 1 (UnitStats 或原始字典)
        unit2: 单位 2
        skills1: 单位 1 的技能列表 (模型或原始字典)
        skills2: 单位 2 的技能列表
        options: 执行参数 (runs, config, saveSampleBattles, seed, workers, batchSize, timeBudget)
        on_progress: 进度回调，参数为 0~100 的百分比，每批次调用一次
        should_stop: 停止请求检查，返回 True 时在下一批次前停止

    Returns:
        SimulationResult

    Raises:
        ValueError: 输入无效 (含 pydantic ValidationError)
    """
    template, opts, u1, u2, has_skills, kwargs = _prepare_duel(unit1, unit2, skills1, skills2, options)
    runner = MonteCarloRunner(template, on_progress=on_progress, should_stop=should_stop, **kwargs)
    acc = runner.run()
    return _duel_result(acc, runner, opts, u1, u2, has_skills)


async def run_simulation_async(
    unit1: Union[UnitStats, Mapping[str, Any]],
    unit2: Union[UnitStats, Mapping[str, Any]],
    skills1: Optional[Sequence[Any]] = None,
    skills2: Optional[Sequence[Any]] = None,
    options: Union[SimulationOptions, Mapping[str, Any], None] = None,
    on_progress: Optional[ProgressCallback] = None,
    should_stop: Optional[StopCallback] = None,
) -> SimulationResult:
    """run_simulation 的异步版本，参数含义相同"""
    template, opts, u1, u2, has_skills, kwargs = _prepare_duel(unit1, unit2, skills1, skills2, options)
    runner = MonteCarloRunner(template, on_progress=on_progress, should_stop=should_stop, **kwargs)
    acc = await runner.run_async()
    return _duel_result(acc, runner, opts, u1, u2, has_skills)


# ============================================================================
# 团队战入口
# ============================================================================

def run_team_simulation(
    team1: Sequence[Union[UnitStats, Mapping[str, Any]]],
    team2: Sequence[Union[UnitStats, Mapping[str, Any]]],
    runs: int = Config.DEFAULT_TEAM_RUNS,
    team_config: Union[TeamBattleConfig, BattleConfig, Mapping[str, Any], None] = None,
    team1_skills: Optional[Mapping[str, Sequence[Any]]] = None,
    team2_skills: Optional[Mapping[str, Sequence[Any]]] = None,
    save_sample_battles: int = 0,
    seed: Optional[int] = None,
    workers: int = 1,
    batch_size: Optional[int] = None,
    time_budget: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
    should_stop: Optional[StopCallback] = None,
) -> TeamResult:
    """团队战蒙特卡洛模拟。

    Args:
        team1: 阵营 1 单位列表
        team2: 阵营 2 单位列表
        runs: 模拟场数
        team_config: 团队战配置 (targetingMode, teamSize 等)
        team1_skills: 单位 id -> 技能列表
        team2_skills: 单位 id -> 技能列表
        save_sample_battles: 保留完整日志的样本场数
        seed: 基础随机种子，None 时随机生成
        workers: 进程数
        batch_size: 批次大小
        time_budget: 墙钟时间预算 (秒)
        on_progress: 进度回调 (0~100)
        should_stop: 停止请求检查

    Returns:
        TeamResult

    Raises:
        ValueError: 空队伍、重复 id、队伍超过 teamSize、runs < 1 等
    """
    if runs < 1:
        raise ValueError("runs 必须 >= 1")
    if save_sample_battles < 0:
        raise ValueError("save_sample_battles 不能为负数")
    config = _as_team_config(team_config)
    t1 = _as_team(team1, "team1")
    t2 = _as_team(team2, "team2")
    if config.team_size is not None and (len(t1) > config.team_size or len(t2) > config.team_size):
        raise ValueError(f"队伍人数超过 teamSize={config.team_size}")

    template = BatchJob(
        kind=TEAM,
        team1=t1,
        team2=t2,
        skills1=_team_skills(t1, team1_skills),
        skills2=_team_skills(t2, team2_skills),
        config=config,
        base_seed=_resolve_seed(seed),
        sample_limit=min(save_sample_battles, runs),
    )
    runner = MonteCarloRunner(
        template,
        runs=runs,
        workers=workers,
        batch_size=batch_size,
        time_budget=time_budget,
        on_progress=on_progress,
        should_stop=should_stop,
    )
    acc = runner.run()
    if acc.skipped:
        logger.warning("共有 %d 场战斗被跳过", acc.skipped)
    return acc.to_result(requested_runs=runs, seed=template.base_seed, cancelled=runner.cancelled)
