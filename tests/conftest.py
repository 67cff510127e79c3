"""
pytest 共享配置和 Fixtures
这个文件会被 pytest 自动加载，所有测试都可以使用这里定义的 fixtures
"""

import random
import sys
from pathlib import Path

import pytest

# 确保 battle_sim 模块能被导入
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# ============================================================================
# 导入项目模块
# ============================================================================
from battle_sim.combat.state import CombatUnit
from battle_sim.models import BattleConfig, UnitStats


def build_unit(**overrides) -> UnitStats:
    """构造测试单位 (默认: 1000 HP / 100 ATK / 0 DEF / 速度 1 / 无暴击 / 必中)"""
    data = dict(
        id="u", name="Unit", hp=1000, atk=100, defense=0, speed=1.0,
        crit_rate=0.0, crit_damage=1.5, accuracy=1.0, evasion=0.0,
    )
    data.update(overrides)
    return UnitStats(**data)


# ============================================================================
# 基础 Fixtures（测试数据）
# ============================================================================

@pytest.fixture
def make_unit():
    """单位工厂"""
    return build_unit


@pytest.fixture
def unit_a():
    """标准场景 A: 1000 HP / 100 ATK"""
    return build_unit(id="a", name="A", hp=1000, atk=100)


@pytest.fixture
def unit_b():
    """标准场景 B: 1000 HP / 50 ATK"""
    return build_unit(id="b", name="B", hp=1000, atk=50)


@pytest.fixture
def basic_config():
    """默认战斗配置 (simple 公式, 0.1s 步长)"""
    return BattleConfig()


@pytest.fixture
def rng():
    """固定种子的随机数生成器"""
    return random.Random(12345)


@pytest.fixture
def make_combat_unit():
    """运行时单位工厂"""
    def _make(side: int = 1, slot: int = 0, skills=None, **overrides) -> CombatUnit:
        overrides.setdefault("id", f"s{side}_{slot}")
        overrides.setdefault("name", f"S{side}-{slot}")
        return CombatUnit.create(build_unit(**overrides), side, slot, skills)
    return _make
