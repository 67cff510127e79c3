"""
目标选择器 (团队战)
根据 targeting_mode 为攻击者在存活敌人中挑选目标；范围技能按 aoe_target_mode 挑选子集
"""

import random
from typing import Dict, List, Optional, Sequence

from ..models import AoeTargetMode, TargetingMode
from .state import CombatUnit


def _lowest_hp(units: Sequence[CombatUnit]) -> CombatUnit:
    return min(units, key=lambda u: (u.current_hp, u.slot))


class TargetSelector:
    """单体目标选择 (每场战斗一个实例，持有集火目标)"""

    def __init__(self, mode: TargetingMode, rng: random.Random):
        self.mode = mode
        self.rng = rng
        # 阵营 -> 当前集火目标
        self._focus: Dict[int, Optional[CombatUnit]] = {1: None, 2: None}

    def select(self, attacker: CombatUnit, enemies: Sequence[CombatUnit]) -> Optional[CombatUnit]:
        """为攻击者选择一个存活敌人。

        Args:
            attacker: 攻击者
            enemies: 敌方全部单位 (按队伍顺序)

        Returns:
            目标单位，无存活敌人时返回 None
        """
        living = [u for u in enemies if u.is_alive]
        if not living:
            return None
        if len(living) == 1:
            return living[0]

        match self.mode:
            case TargetingMode.RANDOM:
                return self.rng.choice(living)
            case TargetingMode.LOWEST_HP:
                return _lowest_hp(living)
            case TargetingMode.HIGHEST_ATK:
                return min(living, key=lambda u: (-u.stats.atk, u.slot))
            case TargetingMode.FOCUSED:
                focus = self._focus.get(attacker.side)
                if focus is None or not focus.is_alive:
                    focus = _lowest_hp(living)
                    self._focus[attacker.side] = focus
                return focus
        raise ValueError(f"未知的目标选择模式: {self.mode}")

    @staticmethod
    def select_group(
        units: Sequence[CombatUnit],
        count: Optional[int],
        mode: AoeTargetMode,
        rng: random.Random,
    ) -> List[CombatUnit]:
        """范围技能目标子集。

        Args:
            units: 候选单位 (按队伍顺序)
            count: 最多目标数，None 表示全部
            mode: 子集挑选方式
            rng: 随机数生成器

        Returns:
            被选中的存活单位列表
        """
        living = [u for u in units if u.is_alive]
        limit = len(living) if count is None else min(count, len(living))
        if limit >= len(living) and mode != AoeTargetMode.RANDOM:
            return living

        match mode:
            case AoeTargetMode.ALL:
                return living[:limit]
            case AoeTargetMode.RANDOM:
                return rng.sample(living, limit)
            case AoeTargetMode.LOWEST_HP:
                return sorted(living, key=lambda u: (u.current_hp, u.slot))[:limit]
            case AoeTargetMode.HIGHEST_HP:
                return sorted(living, key=lambda u: (-u.current_hp, u.slot))[:limit]
        raise ValueError(f"未知的范围目标模式: {mode}")
