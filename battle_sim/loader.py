"""
场景加载器 (Loader)
负责从 YAML / JSON 文件读取对战场景并解析为 Pydantic 模型
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import Field, field_validator

from .config import Config
from .models import (
    CamelModel, SimulationOptions, Skill, TeamBattleConfig, UnitStats, parse_skills,
)


class DuelScenario(CamelModel):
    """1v1 场景"""
    unit1: UnitStats
    unit2: UnitStats
    skills1: List[Skill] = Field(default_factory=list)
    skills2: List[Skill] = Field(default_factory=list)
    options: SimulationOptions = Field(default_factory=SimulationOptions)

    @field_validator("skills1", "skills2", mode="before")
    @classmethod
    def parse_skill_list(cls, value: Any) -> List[Skill]:
        return parse_skills(value)


class TeamScenario(CamelModel):
    """团队战场景，技能以单位 id 为键"""
    team1: List[UnitStats]
    team2: List[UnitStats]
    team1_skills: Dict[str, List[Skill]] = Field(default_factory=dict)
    team2_skills: Dict[str, List[Skill]] = Field(default_factory=dict)
    runs: int = Field(default=Config.DEFAULT_TEAM_RUNS, ge=1)
    config: TeamBattleConfig = Field(default_factory=TeamBattleConfig)
    save_sample_battles: int = Field(default=0, ge=0)
    seed: Optional[int] = None
    workers: int = Field(default=1, ge=1)

    @field_validator("team1_skills", "team2_skills", mode="before")
    @classmethod
    def parse_skill_map(cls, value: Any) -> Dict[str, List[Skill]]:
        return {unit_id: parse_skills(items) for unit_id, items in (value or {}).items()}


Scenario = Union[DuelScenario, TeamScenario]


class ScenarioLoader:
    """场景文件加载器"""

    SUFFIXES = {".yaml", ".yml", ".json"}

    def __init__(self, data_dir: str = "data/scenarios") -> None:
        """
        初始化场景加载器

        Args:
            data_dir: 场景文件目录，load() 收到相对文件名时在此目录下查找
        """
        self.data_dir: Path = Path(data_dir)

    def _resolve(self, path: Union[str, Path]) -> Path:
        file_path = Path(path)
        if not file_path.exists() and not file_path.is_absolute():
            file_path = self.data_dir / file_path
        if not file_path.exists():
            raise FileNotFoundError(f"场景文件不存在: {file_path}")
        if file_path.suffix.lower() not in self.SUFFIXES:
            raise ValueError(f"不支持的场景文件格式: {file_path.suffix}")
        return file_path

    @staticmethod
    def _read(file_path: Path) -> Dict[str, Any]:
        with open(file_path, "r", encoding="utf-8") as f:
            if file_path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"场景文件顶层必须是映射: {file_path}")
        return data

    @staticmethod
    def parse(data: Dict[str, Any]) -> Scenario:
        """根据 mode 字段 (duel / team) 解析场景；缺省时按是否含 team1 判断"""
        data = dict(data)
        mode = data.pop("mode", None) or ("team" if "team1" in data else "duel")
        match mode:
            case "duel":
                return DuelScenario.model_validate(data)
            case "team":
                return TeamScenario.model_validate(data)
            case _:
                raise ValueError(f"未知的场景模式: {mode}")

    def load(self, path: Union[str, Path]) -> Scenario:
        """读取并校验场景文件。

        Args:
            path: 文件路径 (.yaml / .yml / .json)

        Returns:
            DuelScenario 或 TeamScenario

        Raises:
            FileNotFoundError: 文件不存在
            ValueError: 格式不支持或内容校验失败
        """
        return self.parse(self._read(self._resolve(path)))
