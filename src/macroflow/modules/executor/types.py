"""
运行相关类型：每次执行一个 ScenarioRun，以及推送给观察者的快照与结果
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ...core.constants import RunStatus
from ..engine.variables import VariableStore
from ..scenario.types import Step


@dataclass
class RunProgress:
    current: int = 0
    total: Optional[int] = None

    def as_dict(self) -> dict:
        return {"current": self.current, "total": self.total}


@dataclass
class RunSnapshot:
    scenario_key: Optional[str]
    status: RunStatus
    progress: RunProgress

    def as_dict(self) -> dict:
        return {
            "scenario_key": self.scenario_key,
            "status": self.status.value,
            "progress": self.progress.as_dict(),
        }


@dataclass
class RunOutcome:
    status: RunStatus
    message: str = ""
    actions_count: int = 0

    def as_dict(self) -> dict:
        return {
            "status": self.status.value,
            "message": self.message,
            "actions_count": self.actions_count,
        }


@dataclass
class ScenarioRun:
    """一次场景执行的状态，stop/cancel 只设置标记，由引擎在步骤边界检查"""

    steps: List[Step]
    key: Optional[str] = None
    variables: VariableStore = field(default_factory=VariableStore)
    status: RunStatus = RunStatus.RUNNING
    message: str = ""
    progress: RunProgress = field(default_factory=RunProgress)
    should_stop: bool = False
    cancelled: bool = False
    current_index: int = -1
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def stop_requested(self) -> bool:
        return self.should_stop or self.cancelled

    @property
    def actions_count(self) -> int:
        return self.progress.current

    @property
    def finished(self) -> bool:
        return self.status != RunStatus.RUNNING

    def stop(self) -> None:
        self.should_stop = True

    def cancel(self) -> None:
        self.should_stop = True
        self.cancelled = True

    def finish(self, status: RunStatus, message: str = "") -> None:
        self.status = status
        self.message = message
        self.finished_at = datetime.now()

    def snapshot(self) -> RunSnapshot:
        return RunSnapshot(
            scenario_key=self.key,
            status=self.status,
            progress=RunProgress(self.progress.current, self.progress.total),
        )

    def outcome(self) -> RunOutcome:
        return RunOutcome(status=self.status, message=self.message, actions_count=self.actions_count)


__all__ = ["RunProgress", "RunSnapshot", "RunOutcome", "ScenarioRun"]
