"""
战斗模拟全局配置常量
存放所有硬编码的数值参数，便于后续调整平衡性与统计口径
"""


class Config:
    """全局模拟配置"""

    # ========== 战斗默认值 ==========
    DEFAULT_MAX_DURATION = 300.0    # 最大战斗时间 (秒)
    DEFAULT_TIME_STEP = 0.1         # 模拟时间步长 (秒)
    DEFAULT_MIN_DAMAGE = 1.0        # 单次伤害下限
    DEFAULT_CRIT_DAMAGE = 1.5       # 默认暴击倍率

    # ========== 浮点容差 ==========
    # 计时器/冷却累加会产生 0.1 * 10 != 1.0 这类误差
    TIME_EPSILON = 1e-9

    # ========== 防御公式系数 ==========
    MMORPG_DEFENSE_K = 100.0            # ATK * (K / (K + DEF))
    DIVISIVE_DEFENSE_K = 100.0          # 减伤% = DEF / (DEF + K)
    PERCENTAGE_DEFENSE_DIVISOR = 200.0  # 减伤% = DEF / 200
    MULTIPLICATIVE_DEFENSE_DIVISOR = 100.0
    LOG_DEFENSE_OFFSET = 10.0           # 减伤% = log10(DEF + 10) / 5
    LOG_DEFENSE_DIVISOR = 5.0
    MAX_DEFENSE_REDUCTION = 0.9         # 百分比类公式的减伤上限
    RANDOM_DAMAGE_MIN = 0.9             # random 公式的浮动区间
    RANDOM_DAMAGE_MAX = 1.1

    # ========== 技能默认值 ==========
    DEFAULT_HOT_DURATION = 5.0
    DEFAULT_HOT_TICK_INTERVAL = 1.0
    DEFAULT_REVIVE_HP_PERCENT = 0.3

    # ========== 统计口径 ==========
    HISTOGRAM_BINS = 20                 # 直方图固定分箱数
    CONFIDENCE_Z = {0.90: 1.645, 0.95: 1.96, 0.99: 2.576}
    DEFAULT_CONFIDENCE = 0.95

    # 逆转判定: 胜方在战斗中 HP 比例曾跌至该阈值以下
    REVERSAL_HP_THRESHOLD = 0.10
    # 险胜判定: 战斗结束时双方 HP 比例差在该阈值以内
    CLOSE_MATCH_THRESHOLD = 0.10
    # 实际 DPS 低于理论值的该比例时标记为效率损失
    DPS_EFFICIENCY_THRESHOLD = 0.9

    # ========== 蒙特卡洛执行 ==========
    DEFAULT_RUNS = 10000
    DEFAULT_TEAM_RUNS = 1000
    DEFAULT_SAMPLE_BATTLES = 10
    DEFAULT_BATCH_SIZE = 1000           # 每批次的战斗场数 (进度回调粒度)
    MIN_BATCH_SIZE = 50
