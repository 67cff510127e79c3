"""
集成测试: 蒙特卡洛执行器
统计不变量、可复现性、进度/停止回调、跳过失败场次与输入校验
"""

import asyncio
from unittest.mock import patch

import pytest

from battle_sim.models import BattleConfig, DamageFormula, DefenseFormula, SimulationOptions
from battle_sim.simulation import accumulator as accumulator_module
from battle_sim.simulation import runner as runner_module
from battle_sim.simulation.runner import run_simulation, run_simulation_async, run_team_simulation
from battle_sim.simulation.statistics import wilson_interval


def _options(runs=200, seed=42, save_sample_battles=0, **kwargs) -> SimulationOptions:
    return SimulationOptions(runs=runs, seed=seed, save_sample_battles=save_sample_battles, **kwargs)


@pytest.fixture
def rivals(make_unit):
    """势均力敌、带随机性的一对单位"""
    return (
        make_unit(id="knight", name="骑士", hp=1200, atk=90, defense=10, crit_rate=0.2, accuracy=0.9),
        make_unit(id="rogue", name="盗贼", hp=900, atk=80, speed=1.3, crit_rate=0.35, crit_damage=2.0, evasion=0.1),
    )


# ============================================================================
# 统计不变量
# ============================================================================

class TestInvariants:
    """结果不变量测试"""

    def test_counts_add_up(self, rivals):
        """测试 胜 + 胜 + 平 = 总场数，各直方图计数一致"""
        result = run_simulation(*rivals, options=_options(runs=300))
        assert result.unit1_wins + result.unit2_wins + result.draws == result.total_runs == 300
        assert result.unit1_win_rate + result.unit2_win_rate + result.draw_rate == pytest.approx(1.0)
        assert result.duration_distribution.total == 300
        assert result.damage_distribution.unit1.total == 300
        assert result.ttk_distribution.unit1.total == result.unit1_wins
        assert result.ttk_distribution.unit2.total == result.unit2_wins
        assert result.min_duration <= result.avg_duration <= result.max_duration
        ci = result.win_rate_confidence.unit1
        assert 0.0 <= ci.lower <= result.unit1_win_rate <= ci.upper <= 1.0
        assert not result.cancelled
        assert result.skipped_runs == 0

    def test_reference_matchup(self, unit_a, unit_b):
        """测试 A(100 ATK) vs B(50 ATK): A 胜率 >= 99%，TTK 约 10 秒"""
        result = run_simulation(unit_a, unit_b, options=_options(runs=1000))
        assert result.unit1_win_rate >= 0.99
        assert result.ttk_stats.unit1.avg == pytest.approx(10.0, abs=0.01)
        assert not result.ttk_stats.unit2.has_wins
        assert result.ttk_stats.unit2.avg == 0.0
        assert result.theoretical_dps.unit1 == pytest.approx(100)

    def test_symmetric_matchup(self, make_unit):
        """测试完全相同的双方胜率接近 50%"""
        twin = dict(hp=1000, atk=100, crit_rate=0.3, crit_damage=2.0, accuracy=0.8)
        result = run_simulation(
            make_unit(id="l", name="L", **twin), make_unit(id="r", name="R", **twin),
            options=_options(runs=2000, seed=2024),
        )
        decided = result.unit1_wins + result.unit2_wins
        assert abs(result.unit1_wins / decided - 0.5) < 0.05
        ci = wilson_interval(result.unit1_wins, decided, z=3.29)
        assert ci.lower <= 0.5 <= ci.upper

    @pytest.mark.parametrize("damage_formula,defense_formula", [
        (DamageFormula.SIMPLE, DefenseFormula.SUBTRACTIVE),
        (DamageFormula.MULTIPLICATIVE, DefenseFormula.MULTIPLICATIVE),
    ])
    def test_defense_never_lowers_survival_hp(self, make_unit, damage_formula, defense_formula):
        """测试提高防御不会降低平均剩余 HP (胜负未定的对局，战败计 0)"""
        config = BattleConfig(damage_formula=damage_formula, defense_formula=defense_formula)
        enemy = make_unit(id="e", name="E", atk=100, crit_rate=0.2, accuracy=0.9)
        survival, win_rates = [], []
        for defense in (0, 10, 20):
            hero = make_unit(id="h", name="H", atk=95, defense=defense, crit_rate=0.2, accuracy=0.9)
            result = run_simulation(hero, enemy, options=_options(runs=1000, seed=7, config=config))
            survival.append(result.unit1_avg_survival_hp)
            win_rates.append(result.unit1_win_rate)
        assert 0.05 < win_rates[0] < 0.6
        assert all(a <= b for a, b in zip(survival, survival[1:]))
        assert survival[-1] > survival[0]

    def test_crit_rate_without_hits(self, make_unit):
        """测试从未命中时平均暴击率为 0"""
        blind = make_unit(id="blind", name="Blind", accuracy=0.0, crit_rate=0.5)
        result = run_simulation(blind, make_unit(id="x", name="X"), options=_options(runs=50))
        assert result.crit_stats.unit1.total_hits == 0
        assert result.crit_stats.unit1.avg_crit_rate == 0.0
        assert result.unit2_win_rate == 1.0


# ============================================================================
# 可复现性与样本
# ============================================================================

class TestReproducibility:
    """种子与样本战斗测试"""

    def test_same_seed_same_result(self, rivals):
        """测试相同种子结果完全一致"""
        first = run_simulation(*rivals, options=_options(runs=150, save_sample_battles=2))
        second = run_simulation(*rivals, options=_options(runs=150, save_sample_battles=2))
        assert first.to_dict() == second.to_dict()
        assert first.seed == 42

    def test_seed_generated_when_missing(self, rivals):
        """测试未指定种子时生成并回报种子"""
        result = run_simulation(*rivals, options=SimulationOptions(runs=20, save_sample_battles=0))
        assert isinstance(result.seed, int)

    def test_batch_size_does_not_change_result(self, rivals):
        """测试批次大小不影响结果"""
        small = run_simulation(*rivals, options=_options(runs=200, batch_size=30))
        large = run_simulation(*rivals, options=_options(runs=200, batch_size=200))
        assert small.to_dict() == large.to_dict()

    def test_process_pool_matches_sequential(self, rivals):
        """测试多进程执行与单进程结果一致"""
        sequential = run_simulation(*rivals, options=_options(runs=200, batch_size=50, save_sample_battles=2))
        parallel = run_simulation(*rivals, options=_options(runs=200, batch_size=50, save_sample_battles=2, workers=2))
        assert parallel.to_dict() == sequential.to_dict()

    def test_sample_battles(self, rivals):
        """测试样本战斗为前 N 场且日志有序"""
        result = run_simulation(*rivals, options=_options(runs=100, save_sample_battles=3))
        assert [b.run_index for b in result.sample_battles] == [0, 1, 2]
        for battle in result.sample_battles:
            assert battle.seed == 42 + battle.run_index
            times = [entry.time for entry in battle.log]
            assert times == sorted(times)
            assert battle.winner in ("unit1", "unit2", "draw")
        payload = result.to_dict()
        assert len(payload["sampleBattles"]) == 3
        assert "remainingHp" in payload["sampleBattles"][0]["log"][0]

    def test_skill_and_healing_stats(self, rivals):
        """测试带技能时输出技能与治疗统计"""
        skills = [
            {"id": "mend", "name": "包扎", "skillType": "heal", "healAmount": 100, "cooldown": 4,
             "trigger": {"type": "hp_below", "value": 0.6}},
            {"id": "cleave", "name": "顺劈", "damage": 1.5, "cooldown": 3},
        ]
        result = run_simulation(rivals[0], rivals[1], skills1=skills, options=_options(runs=100))
        stats = {s.skill_id: s for s in result.skill_stats.unit1}
        assert set(stats) == {"cleave", "mend"}
        assert stats["cleave"].total_uses > 0
        assert stats["cleave"].avg_damage_per_use > 0
        assert 0 < stats["cleave"].dps_contribution < 1
        assert result.healing_stats.total_healing.unit1 > 0
        assert result.healing_stats.total_healing.unit2 == 0
        assert result.skill_stats.unit2 == []


# ============================================================================
# 回调与容错
# ============================================================================

class TestCallbacks:
    """进度、停止与容错测试"""

    def test_progress_per_batch(self, rivals):
        """测试每个批次调用一次进度回调，最终为 100"""
        progress = []
        run_simulation(*rivals, options=_options(runs=1000, batch_size=250), on_progress=progress.append)
        assert progress == pytest.approx([25.0, 50.0, 75.0, 100.0])

    def test_stop_request_keeps_completed_batches(self, rivals):
        """测试停止请求后保留已完成批次"""
        calls = []

        def should_stop():
            calls.append(1)
            return len(calls) > 2

        result = run_simulation(*rivals, options=_options(runs=1000, batch_size=100), should_stop=should_stop)
        assert result.cancelled
        assert result.total_runs == 200
        assert result.requested_runs == 1000
        assert result.unit1_wins + result.unit2_wins + result.draws == 200

    def test_time_budget(self, rivals):
        """测试超出时间预算时提前停止"""
        result = run_simulation(*rivals, options=_options(runs=1000, batch_size=100, time_budget=1e-9))
        assert result.cancelled
        assert result.total_runs <= 100

    def test_failing_run_is_skipped(self, rivals):
        """测试单场异常被跳过，其余场次照常统计"""
        original = runner_module.simulate_once

        def flaky(job, run_index):
            if run_index in (5, 17):
                raise RuntimeError("boom")
            return original(job, run_index)

        with patch.object(runner_module, "simulate_once", side_effect=flaky):
            result = run_simulation(*rivals, options=_options(runs=100))
        assert result.skipped_runs == 2
        assert result.total_runs == 98
        assert result.unit1_wins + result.unit2_wins + result.draws == 98

    def test_failing_fold_is_skipped(self, rivals):
        """测试折叠记录 (生成样本战斗) 时的异常只跳过该场，不中断批次"""
        original = accumulator_module.make_replay

        def broken_replay(run_index, seed, record, labels):
            if run_index == 1:
                raise RuntimeError("boom")
            return original(run_index, seed, record, labels)

        with patch.object(accumulator_module, "make_replay", side_effect=broken_replay):
            result = run_simulation(*rivals, options=_options(runs=100, save_sample_battles=3))
        assert result.skipped_runs == 1
        assert result.total_runs == 99
        assert result.unit1_wins + result.unit2_wins + result.draws == 99
        assert result.duration_distribution.total == 99
        assert [b.run_index for b in result.sample_battles] == [0, 2]

    def test_async_matches_sync(self, rivals):
        """测试异步接口与同步接口结果一致"""
        progress = []
        options = _options(runs=200, batch_size=100)
        async_result = asyncio.run(run_simulation_async(*rivals, options=options, on_progress=progress.append))
        sync_result = run_simulation(*rivals, options=options)
        assert async_result.to_dict() == sync_result.to_dict()
        assert progress[-1] == pytest.approx(100.0)


# ============================================================================
# 输入校验
# ============================================================================

class TestValidation:
    """输入校验测试"""

    def test_raw_dict_input(self):
        """测试接受 camelCase 原始字典"""
        unit1 = {"id": "a", "name": "A", "hp": 500, "atk": 80, "def": 5, "speed": 1}
        unit2 = {"id": "b", "name": "B", "maxHp": 500, "atk": 40, "speed": 1}
        result = run_simulation(unit1, unit2, options={"runs": 20, "seed": 1, "config": {"maxDuration": 60}})
        assert result.total_runs == 20
        assert result.unit1_win_rate == 1.0

    def test_invalid_unit_rejected(self):
        """测试非法属性报错"""
        with pytest.raises(ValueError):
            run_simulation({"id": "a", "name": "A", "hp": 0, "atk": 1, "speed": 1},
                           {"id": "b", "name": "B", "hp": 1, "atk": 1, "speed": 1})

    def test_zero_runs_rejected(self, rivals):
        """测试 runs = 0 报错"""
        with pytest.raises(ValueError):
            run_simulation(*rivals, options={"runs": 0})

    def test_team_input_errors(self, make_unit):
        """测试空队伍、重复 id、超出 teamSize 与未知技能归属"""
        a, b = make_unit(id="a", name="A"), make_unit(id="b", name="B")
        with pytest.raises(ValueError):
            run_team_simulation([], [b], runs=10)
        with pytest.raises(ValueError):
            run_team_simulation([a, make_unit(id="a", name="A2")], [b], runs=10)
        with pytest.raises(ValueError):
            run_team_simulation([a, make_unit(id="c", name="C")], [b], runs=10, team_config={"teamSize": 1})
        with pytest.raises(ValueError):
            run_team_simulation([a], [b], runs=10, team1_skills={"ghost": []})
        with pytest.raises(ValueError):
            run_team_simulation([a], [b], runs=0)


# ============================================================================
# 团队战
# ============================================================================

class TestTeamSimulation:
    """团队战蒙特卡洛测试"""

    def test_stronger_team_wins(self, make_unit):
        """测试 3v1 优势方胜率 >= 99%"""
        team1 = [make_unit(id=f"a{i}", name=f"A{i}", crit_rate=0.2) for i in range(3)]
        team2 = [make_unit(id="boss", name="Boss", hp=1500, atk=120)]
        result = run_team_simulation(team1, team2, runs=200, seed=5, save_sample_battles=2)
        assert result.team1_win_rate >= 0.99
        assert result.team1_wins + result.team2_wins + result.draws == result.total_runs == 200
        assert result.duration_distribution.total == 200
        assert len(result.sample_battles) == 2
        assert result.sample_battles[0].winner in ("team1", "team2", "draw")

        by_id = {u.unit_id: u for u in result.unit_stats}
        assert by_id["boss"].survival_rate <= 0.01
        assert sum(u.mvp_count for u in result.unit_stats if u.team == "team1") == 200
        assert sum(u.avg_kills for u in result.unit_stats if u.team == "team1") == pytest.approx(
            result.team1_win_rate
        )
        for unit in result.unit_stats:
            assert 0.0 <= unit.survival_rate <= 1.0
        assert 0 <= result.avg_survivors.team1 <= 3

    def test_team_skills_and_targeting(self, make_unit):
        """测试团队战技能映射与目标选择配置"""
        team1 = [make_unit(id="mage", name="法师", hp=800), make_unit(id="tank", name="坦克", hp=2000, atk=40)]
        team2 = [make_unit(id="x", name="X"), make_unit(id="y", name="Y")]
        skills = {"mage": [{"id": "nova", "name": "新星", "skillType": "aoe_damage", "damage": 1.2, "cooldown": 5}]}
        result = run_team_simulation(
            team1, team2, runs=100, seed=11, team1_skills=skills,
            team_config={"targetingMode": "focused", "teamSize": 2},
        )
        assert result.total_runs == 100
        payload = result.to_dict()
        assert "team1WinRate" in payload
        assert payload["unitStats"][0]["team"] == "team1"

    def test_team_crit_skill_and_healing_stats(self, make_unit):
        """测试团队战输出暴击、技能与治疗统计"""
        team1 = [
            make_unit(id="cleric", name="牧师", crit_rate=0.5),
            make_unit(id="mage", name="法师", atk=120, crit_rate=0.5),
        ]
        team2 = [make_unit(id="x", name="X", atk=110), make_unit(id="y", name="Y", atk=110)]
        skills = {
            "cleric": [{"id": "mend", "name": "群疗", "skillType": "aoe_heal", "healAmount": 80, "cooldown": 3}],
            "mage": [{"id": "nova", "name": "新星", "skillType": "aoe_damage", "damage": 1.0, "cooldown": 4}],
        }
        result = run_team_simulation(team1, team2, runs=100, seed=21, team1_skills=skills)
        payload = result.to_dict()
        assert {"critStats", "skillStats", "healingStats"} <= set(payload)
        assert "critStats" in payload["unitStats"][0]

        assert result.crit_stats.team1.avg_crit_rate == pytest.approx(0.5, abs=0.05)
        assert result.crit_stats.team2.total_crits == 0
        assert result.healing_stats.total_healing.team1 > 0
        assert result.healing_stats.hps.team1 > 0
        assert result.healing_stats.total_healing.team2 == 0
        team_skills = {s.skill_id: s for s in result.skill_stats.team1}
        assert team_skills["mend"].total_healing > 0
        assert team_skills["nova"].avg_damage_per_use > 0
        assert 0 < team_skills["nova"].dps_contribution < 1
        by_id = {u.unit_id: u for u in result.unit_stats}
        assert by_id["cleric"].total_healing == pytest.approx(result.healing_stats.total_healing.team1)
        assert by_id["mage"].skill_stats[0].total_uses == team_skills["nova"].total_uses

    def test_team_reproducible(self, make_unit):
        """测试团队战相同种子结果一致"""
        team1 = [make_unit(id="a", name="A", crit_rate=0.3), make_unit(id="b", name="B", accuracy=0.8)]
        team2 = [make_unit(id="c", name="C", atk=110), make_unit(id="d", name="D", evasion=0.1)]
        first = run_team_simulation(team1, team2, runs=100, seed=3)
        second = run_team_simulation(team1, team2, runs=100, seed=3, batch_size=7)
        assert first.to_dict() == second.to_dict()
