import argparse
import io
import json
import logging
import sys

# Windows UTF-8 兼容性处理
if sys.platform.startswith('win'):
    # type: ignore (针对特定平台的重写)
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8')

from battle_sim import ScenarioLoader, run_simulation, run_team_simulation
from battle_sim.loader import DuelScenario, TeamScenario
from battle_sim.simulation.results import SimulationResult, TeamResult


def _progress(percent: float) -> None:
    print(f"\r进度 {percent:>5.1f}%", end="", flush=True)


def print_duel_summary(scenario: DuelScenario, result: SimulationResult) -> None:
    """打印 1v1 结果摘要"""
    name1, name2 = scenario.unit1.name, scenario.unit2.name
    ci1 = result.win_rate_confidence.unit1
    ci2 = result.win_rate_confidence.unit2
    print(f"模拟场数: {result.total_runs}/{result.requested_runs}  (跳过 {result.skipped_runs}, seed={result.seed})")
    print(f"{name1} 胜率: {result.unit1_win_rate:.2%}  95% CI [{ci1.lower:.2%}, {ci1.upper:.2%}]")
    print(f"{name2} 胜率: {result.unit2_win_rate:.2%}  95% CI [{ci2.lower:.2%}, {ci2.upper:.2%}]")
    print(f"平局: {result.draws}")
    print(f"平均时长: {result.avg_duration:.2f}s  (最短 {result.min_duration:.2f}s / 最长 {result.max_duration:.2f}s)")
    for label, name in (("unit1", name1), ("unit2", name2)):
        ttk = getattr(result.ttk_stats, label)
        eff = getattr(result.dps_efficiency, label)
        ttk_text = f"{ttk.avg:.2f}s" if ttk.has_wins else "无胜场"
        flag = "  ⚠ 效率损失" if eff.efficiency_loss else ""
        print(f"  {name}: TTK {ttk_text}, DPS {eff.actual:.1f} / 理论 {eff.theoretical:.1f}{flag}")
    ra = result.reversal_analysis
    print(f"逆转: {name1} {ra.unit1_reversals} / {name2} {ra.unit2_reversals}，暴击逆转 {ra.crit_caused_reversals}，险胜 {ra.close_matches}")


def print_team_summary(result: TeamResult) -> None:
    """打印团队战结果摘要"""
    print(f"模拟场数: {result.total_runs}/{result.requested_runs}  (跳过 {result.skipped_runs}, seed={result.seed})")
    print(f"team1 胜率: {result.team1_win_rate:.2%}   team2 胜率: {result.team2_win_rate:.2%}   平局: {result.draws}")
    print(f"平均存活: team1 {result.avg_survivors.team1:.2f} / team2 {result.avg_survivors.team2:.2f}")
    crit, heal = result.crit_stats, result.healing_stats
    print(f"暴击率: team1 {crit.team1.avg_crit_rate:.2%} / team2 {crit.team2.avg_crit_rate:.2%}   "
          f"HPS: team1 {heal.hps.team1:.1f} / team2 {heal.hps.team2:.1f}")
    for unit in result.unit_stats:
        print(
            f"  [{unit.team}] {unit.name}: 存活率 {unit.survival_rate:.2%}, "
            f"击杀 {unit.avg_kills:.2f}, MVP {unit.mvp_count}, 伤害 {unit.avg_damage_dealt:.1f}"
        )


def main() -> int:
    """主函数"""
    parser = argparse.ArgumentParser(description="蒙特卡洛战斗模拟")
    parser.add_argument("scenario", help="场景文件 (.yaml / .json)")
    parser.add_argument("--runs", type=int, default=None, help="覆盖场景中的模拟场数")
    parser.add_argument("--seed", type=int, default=None, help="覆盖随机种子")
    parser.add_argument("--workers", type=int, default=None, help="进程数")
    parser.add_argument("--json", action="store_true", help="输出完整 JSON 结果")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("=" * 80)
    print("蒙特卡洛战斗模拟器")
    print("=" * 80)

    try:
        scenario = ScenarioLoader().load(args.scenario)
        overrides = {k: v for k, v in (("runs", args.runs), ("seed", args.seed), ("workers", args.workers)) if v is not None}

        if isinstance(scenario, TeamScenario):
            scenario = scenario.model_copy(update=overrides)
            result = run_team_simulation(
                scenario.team1,
                scenario.team2,
                runs=scenario.runs,
                team_config=scenario.config,
                team1_skills=scenario.team1_skills,
                team2_skills=scenario.team2_skills,
                save_sample_battles=scenario.save_sample_battles,
                seed=scenario.seed,
                workers=scenario.workers,
                on_progress=_progress,
            )
            print()
            if args.json:
                print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
            else:
                print_team_summary(result)
        else:
            options = scenario.options.model_copy(update=overrides)
            result = run_simulation(
                scenario.unit1, scenario.unit2, scenario.skills1, scenario.skills2,
                options, on_progress=_progress,
            )
            print()
            if args.json:
                print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
            else:
                print_duel_summary(scenario, result)

    except FileNotFoundError as e:
        print(f"❌ 错误: {e}")
        return 1

    except ValueError as e:
        print(f"❌ 场景无效: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
