"""
单元测试: 团队战目标选择
"""

import random

from battle_sim.combat.targeting import TargetSelector
from battle_sim.models import AoeTargetMode, TargetingMode


def _team(make_combat_unit, rows):
    """rows: [(当前 HP, ATK), ...] -> 阵营 2 的单位列表"""
    units = []
    for slot, (hp, atk) in enumerate(rows):
        unit = make_combat_unit(side=2, slot=slot, hp=1000, atk=atk)
        unit.current_hp = hp
        units.append(unit)
    return units


class TestSingleTarget:
    """单体目标选择测试"""

    def test_lowest_hp_with_slot_tiebreak(self, make_combat_unit, rng):
        """测试 lowest_hp: HP 相同时取队伍靠前者"""
        enemies = _team(make_combat_unit, [(500, 10), (300, 10), (300, 10)])
        selector = TargetSelector(TargetingMode.LOWEST_HP, rng)
        assert selector.select(make_combat_unit(), enemies) is enemies[1]

    def test_highest_atk_with_slot_tiebreak(self, make_combat_unit, rng):
        """测试 highest_atk: ATK 相同时取队伍靠前者"""
        enemies = _team(make_combat_unit, [(500, 10), (500, 80), (500, 80)])
        selector = TargetSelector(TargetingMode.HIGHEST_ATK, rng)
        assert selector.select(make_combat_unit(), enemies) is enemies[1]

    def test_dead_units_are_skipped(self, make_combat_unit, rng):
        """测试只会选择存活单位"""
        enemies = _team(make_combat_unit, [(100, 10), (900, 10)])
        enemies[0].die()
        selector = TargetSelector(TargetingMode.LOWEST_HP, rng)
        assert selector.select(make_combat_unit(), enemies) is enemies[1]

    def test_no_living_enemy(self, make_combat_unit, rng):
        """测试无存活敌人时返回 None"""
        enemies = _team(make_combat_unit, [(100, 10)])
        enemies[0].die()
        assert TargetSelector(TargetingMode.RANDOM, rng).select(make_combat_unit(), enemies) is None

    def test_random_covers_all_living(self, make_combat_unit):
        """测试 random 在存活单位中均匀选择"""
        enemies = _team(make_combat_unit, [(500, 10), (500, 10), (500, 10)])
        enemies[2].die()
        selector = TargetSelector(TargetingMode.RANDOM, random.Random(8))
        attacker = make_combat_unit()
        picked = {selector.select(attacker, enemies).slot for _ in range(200)}
        assert picked == {0, 1}

    def test_focused_shared_by_side_and_retargets(self, make_combat_unit, rng):
        """测试 focused: 同阵营共享集火目标，目标死亡后重新选择最低 HP"""
        enemies = _team(make_combat_unit, [(800, 10), (400, 10), (600, 10)])
        selector = TargetSelector(TargetingMode.FOCUSED, rng)
        first = make_combat_unit(side=1, slot=0)
        second = make_combat_unit(side=1, slot=1)

        target = selector.select(first, enemies)
        assert target is enemies[1]
        # 目标 HP 变化后仍保持集火
        enemies[0].current_hp = 100
        assert selector.select(second, enemies) is enemies[1]

        enemies[1].die()
        assert selector.select(second, enemies) is enemies[0]
        assert selector.select(first, enemies) is enemies[0]


class TestGroupTargets:
    """范围技能目标子集测试"""

    def test_all_when_count_missing(self, make_combat_unit, rng):
        """测试未指定数量时选中全部存活单位"""
        units = _team(make_combat_unit, [(500, 10), (300, 10), (100, 10)])
        units[1].die()
        group = TargetSelector.select_group(units, None, AoeTargetMode.ALL, rng)
        assert group == [units[0], units[2]]

    def test_lowest_hp_subset(self, make_combat_unit, rng):
        """测试 lowest_hp 子集"""
        units = _team(make_combat_unit, [(500, 10), (300, 10), (100, 10)])
        group = TargetSelector.select_group(units, 2, AoeTargetMode.LOWEST_HP, rng)
        assert group == [units[2], units[1]]

    def test_highest_hp_subset(self, make_combat_unit, rng):
        """测试 highest_hp 子集"""
        units = _team(make_combat_unit, [(500, 10), (300, 10), (100, 10)])
        group = TargetSelector.select_group(units, 1, AoeTargetMode.HIGHEST_HP, rng)
        assert group == [units[0]]

    def test_random_subset_is_distinct(self, make_combat_unit, rng):
        """测试 random 子集不重复"""
        units = _team(make_combat_unit, [(500, 10)] * 5)
        group = TargetSelector.select_group(units, 3, AoeTargetMode.RANDOM, rng)
        assert len(group) == 3
        assert len({u.slot for u in group}) == 3

    def test_count_larger_than_team(self, make_combat_unit, rng):
        """测试数量超过存活人数时取全部"""
        units = _team(make_combat_unit, [(500, 10), (300, 10)])
        group = TargetSelector.select_group(units, 5, AoeTargetMode.LOWEST_HP, rng)
        assert len(group) == 2
