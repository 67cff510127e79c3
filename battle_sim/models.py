"""
数据模型定义
包含所有枚举类型、输入配置模型 (Pydantic) 与战斗日志模型

命名约定:
- Python 侧属性使用 snake_case
- 序列化/反序列化使用 camelCase 别名 (maxHp, critRate, skillType ...)，两种写法均可输入
"""

from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel

from .config import Config

# ============================================================================
# 枚举类型 (Enums)
# ============================================================================

class SkillType(str, Enum):
    """技能类型"""
    DAMAGE = "damage"           # 单体伤害
    HEAL = "heal"               # 即时治疗 (自身)
    HOT = "hot"                 # 持续治疗 (Heal over Time)
    INVINCIBLE = "invincible"   # 无敌
    REVIVE = "revive"           # 复活 (死亡时被动触发)
    AOE_DAMAGE = "aoe_damage"   # 范围伤害
    AOE_HEAL = "aoe_heal"       # 范围治疗


class TriggerType(str, Enum):
    """技能触发条件"""
    ALWAYS = "always"
    HP_BELOW = "hp_below"
    HP_ABOVE = "hp_above"
    ON_HIT = "on_hit"
    ON_CRIT = "on_crit"


class DamageFormula(str, Enum):
    """伤害公式"""
    SIMPLE = "simple"                   # ATK - DEF
    MMORPG = "mmorpg"                   # ATK * (100 / (100 + DEF))
    PERCENTAGE = "percentage"           # ATK * (1 - DEF/200)
    RANDOM = "random"                   # ATK * random(0.9~1.1) - DEF
    MULTIPLICATIVE = "multiplicative"   # 交由 DefenseFormula 决定减伤方式


class DefenseFormula(str, Enum):
    """防御减伤公式"""
    SUBTRACTIVE = "subtractive"         # damage = ATK - DEF
    DIVISIVE = "divisive"               # 减伤% = DEF / (DEF + 100)
    MULTIPLICATIVE = "multiplicative"   # 减伤% = DEF / 100
    LOGARITHMIC = "logarithmic"         # 减伤% = log10(DEF + 10) / 5


class TargetingMode(str, Enum):
    """团队战目标选择策略"""
    RANDOM = "random"
    LOWEST_HP = "lowest_hp"
    HIGHEST_ATK = "highest_atk"
    FOCUSED = "focused"


class AoeTargetMode(str, Enum):
    """范围技能目标选择方式"""
    ALL = "all"
    RANDOM = "random"
    LOWEST_HP = "lowest_hp"
    HIGHEST_HP = "highest_hp"


class LogAction(str, Enum):
    """战斗日志动作类型"""
    ATTACK = "attack"
    SKILL = "skill"
    BUFF = "buff"
    DEBUFF = "debuff"
    HEAL = "heal"
    HOT_TICK = "hot_tick"
    HOT_END = "hot_end"
    DEATH = "death"
    INVINCIBLE = "invincible"
    INVINCIBLE_END = "invincible_end"
    REVIVE = "revive"


AmountType = Literal["flat", "percent"]
DamageType = Literal["flat", "multiplier"]


class CamelModel(BaseModel):
    """camelCase 别名基类 (不可变)"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        use_enum_values=False,
    )


# ============================================================================
# 单位属性 (Unit Stats)
# ============================================================================

class UnitStats(CamelModel):
    """战斗单位静态属性 (每场战斗只读)"""
    id: str
    name: str
    hp: float = Field(gt=0)
    max_hp: float = Field(gt=0)
    atk: float = Field(ge=0)
    defense: float = Field(default=0.0, ge=0, alias="def")
    speed: float = Field(gt=0)             # 每秒攻击次数，攻击间隔 = 1 / speed
    crit_rate: float = Field(default=0.0, ge=0, le=1)
    crit_damage: float = Field(default=Config.DEFAULT_CRIT_DAMAGE, ge=0)
    accuracy: float = Field(default=1.0, ge=0, le=1)
    evasion: float = Field(default=0.0, ge=0, le=1)

    @model_validator(mode="before")
    @classmethod
    def fill_hp_fields(cls, data: Any) -> Any:
        """hp 与 maxHp 只给出其一时互相补全"""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        hp = data.get("hp")
        max_hp = data.get("max_hp", data.get("maxHp"))
        if hp is None and max_hp is not None:
            data["hp"] = max_hp
        elif max_hp is None and hp is not None:
            data["max_hp"] = hp
        return data

    @model_validator(mode="after")
    def check_hp(self) -> "UnitStats":
        if self.hp > self.max_hp:
            raise ValueError("hp 不能大于 maxHp")
        return self

    @property
    def attack_interval(self) -> float:
        return 1.0 / self.speed


# ============================================================================
# 技能定义 (Skill Variants) - 以 skillType 为判别字段的联合类型
# ============================================================================

class SkillTrigger(CamelModel):
    """技能触发条件"""
    type: TriggerType = TriggerType.ALWAYS
    chance: float = Field(default=1.0, gt=0, le=1)
    value: float = 0.0      # HP 比例阈值，仅 hp_below / hp_above 使用


class InvincibleTradeoff(CamelModel):
    """无敌期间的代价"""
    cannot_attack: bool = False
    cannot_use_skills: bool = False


class _SkillBase(CamelModel):
    id: str
    name: str
    cooldown: float = Field(default=0.0, ge=0)
    trigger: SkillTrigger = Field(default_factory=SkillTrigger)


class DamageSkill(_SkillBase):
    skill_type: Literal["damage"] = "damage"
    damage: float = Field(ge=0)
    damage_type: DamageType = "multiplier"


class AoeDamageSkill(_SkillBase):
    skill_type: Literal["aoe_damage"] = "aoe_damage"
    damage: float = Field(ge=0)
    damage_type: DamageType = "multiplier"
    aoe_target_count: Optional[int] = Field(default=None, ge=1)   # None = 全体
    aoe_target_mode: AoeTargetMode = AoeTargetMode.ALL


class HealSkill(_SkillBase):
    skill_type: Literal["heal"] = "heal"
    heal_amount: float = Field(ge=0)
    heal_type: AmountType = "flat"


class AoeHealSkill(_SkillBase):
    skill_type: Literal["aoe_heal"] = "aoe_heal"
    heal_amount: float = Field(ge=0)
    heal_type: AmountType = "flat"
    aoe_target_count: Optional[int] = Field(default=None, ge=1)
    aoe_target_mode: AoeTargetMode = AoeTargetMode.ALL


class HotSkill(_SkillBase):
    """持续治疗；hot_amount 为负数时视为持续伤害 (可致死)"""
    skill_type: Literal["hot"] = "hot"
    hot_duration: float = Field(default=Config.DEFAULT_HOT_DURATION, gt=0)
    hot_tick_interval: float = Field(default=Config.DEFAULT_HOT_TICK_INTERVAL, gt=0)
    hot_amount: float = 0.0
    hot_type: AmountType = "flat"


class InvincibleSkill(_SkillBase):
    skill_type: Literal["invincible"] = "invincible"
    invincible_duration: float = Field(default=0.0, ge=0)
    tradeoff: Optional[InvincibleTradeoff] = None


class ReviveSkill(_SkillBase):
    skill_type: Literal["revive"] = "revive"
    revive_hp_percent: float = Field(default=Config.DEFAULT_REVIVE_HP_PERCENT, gt=0, le=1)
    revive_target: Literal["self", "ally"] = "self"


Skill = Annotated[
    Union[DamageSkill, AoeDamageSkill, HealSkill, AoeHealSkill, HotSkill, InvincibleSkill, ReviveSkill],
    Field(discriminator="skill_type"),
]

_skill_adapter: TypeAdapter = TypeAdapter(Skill)


def parse_skill(data: Any) -> Skill:
    """将原始字典校验为具体技能变体。

    未声明 skillType 的记录按伤害技能处理。

    Args:
        data: 原始技能定义 (dict) 或已构造的技能对象

    Returns:
        对应 skillType 的技能模型
    """
    if isinstance(data, _SkillBase):
        return data
    if isinstance(data, dict) and "skillType" not in data and "skill_type" not in data:
        data = {**data, "skillType": SkillType.DAMAGE.value}
    return _skill_adapter.validate_python(data)


def parse_skills(items: Optional[Iterable[Any]]) -> List[Skill]:
    return [parse_skill(item) for item in (items or [])]


# ============================================================================
# 战斗配置 (Battle Config)
# ============================================================================

class ArmorPenetration(CamelModel):
    """防御穿透/削减"""
    flat_penetration: float = Field(default=0.0, ge=0)
    percent_penetration: float = Field(default=0.0, ge=0, le=1)
    flat_reduction: float = Field(default=0.0, ge=0)
    percent_reduction: float = Field(default=0.0, ge=0, le=1)


class BattleConfig(CamelModel):
    """单场战斗配置"""
    max_duration: float = Field(default=Config.DEFAULT_MAX_DURATION, gt=0)
    time_step: float = Field(default=Config.DEFAULT_TIME_STEP, gt=0)
    damage_formula: DamageFormula = DamageFormula.SIMPLE
    defense_formula: DefenseFormula = DefenseFormula.SUBTRACTIVE
    armor_penetration: Optional[ArmorPenetration] = None
    min_damage: float = Field(default=Config.DEFAULT_MIN_DAMAGE, ge=0)

    @model_validator(mode="after")
    def check_time_step(self) -> "BattleConfig":
        if self.time_step > self.max_duration:
            raise ValueError("timeStep 不能大于 maxDuration")
        return self


class TeamBattleConfig(BattleConfig):
    """团队战配置"""
    team_size: Optional[int] = Field(default=None, ge=1)
    targeting_mode: TargetingMode = TargetingMode.RANDOM


class SimulationOptions(CamelModel):
    """蒙特卡洛执行参数 (回调函数不在此模型中，由调用方单独传入)"""
    runs: int = Field(default=Config.DEFAULT_RUNS, ge=1)
    config: BattleConfig = Field(default_factory=BattleConfig)
    save_sample_battles: int = Field(default=Config.DEFAULT_SAMPLE_BATTLES, ge=0)
    seed: Optional[int] = None
    workers: int = Field(default=1, ge=1)
    batch_size: Optional[int] = Field(default=None, ge=1)
    time_budget: Optional[float] = Field(default=None, gt=0)   # 墙钟时间预算 (秒)


# ============================================================================
# 战斗日志 (Battle Log)
# ============================================================================

class BattleLogEntry(BaseModel):
    """单条战斗日志 (按时间追加，time 单调不减)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    time: float
    actor: str
    action: LogAction
    target: Optional[str] = None
    damage: Optional[float] = None
    is_crit: Optional[bool] = None
    is_miss: Optional[bool] = None
    remaining_hp: Optional[float] = None
    skill_name: Optional[str] = None
    heal_amount: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
