"""
场景文件加载器

运行时加载、校验、缓存场景文件（YAML / JSON）。
支持热重载：通过文件修改时间检测变更，自动重新加载。
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ...core.config import settings
from ...core.logger import logger
from .resolver import BlockResolver
from .types import Step, parse_steps

_SUFFIXES = (".yaml", ".yml", ".json")


@dataclass
class Scenario:
    key: str
    name: str
    steps: List[Step]
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _CacheEntry:
    scenario: Scenario
    mtime: float


class ScenarioLoader:
    """场景加载器（按 key 读取 {base_dir}/{key}.yaml|.yml|.json）"""

    def __init__(self, base_dir: Optional[str] = None):
        self._base_dir = Path(base_dir or settings.scenario_dir)
        self._cache: Dict[str, _CacheEntry] = {}
        self._log = logger.bind(module="ScenarioLoader")

    def _find_file(self, key: str) -> Optional[Path]:
        for suffix in _SUFFIXES:
            candidate = self._base_dir / f"{key}{suffix}"
            if candidate.exists():
                return candidate
        return None

    def keys(self) -> List[str]:
        """列出目录下所有场景 key。"""
        if not self._base_dir.is_dir():
            return []
        return sorted({p.stem for p in self._base_dir.iterdir() if p.suffix in _SUFFIXES})

    def load(self, key: str) -> Optional[Scenario]:
        """加载指定场景。

        支持热重载：文件修改后自动重新加载。

        Args:
            key: 场景 key，对应文件 {base_dir}/{key}.yaml

        Returns:
            Scenario，文件不存在、解析失败或结构校验失败返回 None
        """
        file_path = self._find_file(key)
        if file_path is None:
            self._log.warning(f"场景文件不存在: {self._base_dir / key}")
            return None

        current_mtime = os.path.getmtime(file_path)
        cached = self._cache.get(key)

        # 缓存命中且文件未修改
        if cached and cached.mtime == current_mtime:
            return cached.scenario

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                if file_path.suffix == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            self._log.error(f"场景文件解析失败: {file_path}: {e}")
            return None

        # 允许顶层直接是步骤列表
        if isinstance(data, list):
            data = {"steps": data}
        if not isinstance(data, dict):
            self._log.error(f"场景文件格式错误（非 dict/list）: {file_path}")
            return None

        errors = self._validate(data)
        if errors:
            for err in errors:
                self._log.error(f"场景校验失败 [{key}]: {err}")
            return None

        try:
            steps = parse_steps(data["steps"])
        except (ValueError, TypeError) as e:
            self._log.error(f"场景步骤解析失败 [{key}]: {e}")
            return None

        problems = BlockResolver(steps).validate()
        if problems:
            for problem in problems:
                self._log.error(f"场景结构错误 [{key}]: {problem}")
            return None

        scenario = Scenario(
            key=key,
            name=str(data.get("name") or key),
            steps=steps,
            meta={k: v for k, v in data.items() if k not in ("name", "steps")},
        )
        self._cache[key] = _CacheEntry(scenario=scenario, mtime=current_mtime)
        self._log.info(f"场景已加载: {file_path} ({len(steps)} steps)")
        return scenario

    @staticmethod
    def _validate(data: dict) -> List[str]:
        """基础结构校验。"""
        errors: List[str] = []
        steps = data.get("steps")
        if not isinstance(steps, list):
            errors.append("steps 必须是列表")
            return errors
        for index, item in enumerate(steps):
            if not isinstance(item, dict):
                errors.append(f"steps[{index}] 必须是 dict")
            elif not (item.get("kind") or item.get("type")):
                errors.append(f"steps[{index}] 缺少 kind/type 字段")
        return errors


__all__ = ["Scenario", "ScenarioLoader"]
