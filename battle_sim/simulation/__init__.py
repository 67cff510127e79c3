"""
simulation 包初始化文件
"""

from .accumulator import DuelAccumulator, TeamAccumulator
from .results import SimulationResult, TeamResult
from .runner import (
    MonteCarloRunner, run_batch, run_simulation, run_simulation_async, run_team_simulation,
)
from .statistics import build_histogram, wilson_interval

__all__ = [
    'DuelAccumulator',
    'TeamAccumulator',
    'SimulationResult',
    'TeamResult',
    'MonteCarloRunner',
    'run_batch',
    'run_simulation',
    'run_simulation_async',
    'run_team_simulation',
    'build_histogram',
    'wilson_interval',
]
