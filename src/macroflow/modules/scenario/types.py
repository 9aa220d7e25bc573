"""
场景步骤模型

场景是扁平、有序的 ``Step`` 列表，不显式保存嵌套结构；
块结构由块解析器根据每个步骤的 ``kind`` 与 ``pair_id`` 推导。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from ...core.constants import CONTROL_KINDS, ConditionOperator, ErrorPolicy, StepKind


def _new_id() -> str:
    return uuid4().hex


def parse_kind(value: Any) -> StepKind:
    """把外部数据中的类型映射为 StepKind，未知类型抛 ValueError"""
    if isinstance(value, StepKind):
        return value
    try:
        return StepKind(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown step kind: {value!r}") from None


def _parse_operator(value: Any) -> ConditionOperator:
    if value is None or value == "":
        return ConditionOperator.AND
    try:
        return ConditionOperator(str(value).strip().upper())
    except ValueError:
        raise ValueError(f"Unknown condition operator: {value!r}") from None


@dataclass
class Condition:
    """
    条件步骤中的一个探测项

    ``operator`` 只为原样保留编辑器数据，整组条件如何组合
    由所属步骤的 ``condition_operator`` 决定。
    """
    action_type: StepKind
    params: Dict[str, Any] = field(default_factory=dict)
    negate: bool = False
    operator: ConditionOperator = ConditionOperator.AND
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        kind = parse_kind(data.get("actionType") or data.get("action_type") or data.get("type"))
        if kind in CONTROL_KINDS:
            raise ValueError(f"Control step kind cannot be used as a condition: {kind.value}")
        return cls(
            action_type=kind,
            params=dict(data.get("params") or {}),
            negate=bool(data.get("negate", False)),
            operator=_parse_operator(data.get("operator")),
            id=str(data.get("id") or _new_id()),
        )

    def as_step(self) -> "Step":
        """生成用于探测该条件的叶子步骤"""
        return Step(kind=self.action_type, params=dict(self.params), id=self.id)


_STEP_KEYS = {
    "id",
    "kind",
    "type",
    "pairId",
    "pair_id",
    "conditions",
    "conditionOperator",
    "condition_operator",
    "onError",
    "on_error",
    "params",
}


@dataclass
class Step:
    kind: StepKind
    params: Dict[str, Any] = field(default_factory=dict)
    pair_id: Optional[str] = None
    conditions: List[Condition] = field(default_factory=list)
    condition_operator: ConditionOperator = ConditionOperator.AND
    on_error: ErrorPolicy = ErrorPolicy.CONTINUE
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Step":
        """
        解析编辑器/场景文件中的步骤

        类型取 ``kind`` 或 ``type``，键名使用驼峰。
        外层字段之外的键都作为参数，覆盖显式的 ``params``。
        """
        kind = parse_kind(data.get("kind") or data.get("type"))
        params: Dict[str, Any] = dict(data.get("params") or {})
        for key, value in data.items():
            if key not in _STEP_KEYS:
                params[key] = value

        pair_id = data.get("pairId", data.get("pair_id"))
        on_error = data.get("onError", data.get("on_error")) or ErrorPolicy.CONTINUE
        try:
            policy = ErrorPolicy(on_error)
        except ValueError:
            raise ValueError(f"Unknown onError policy: {on_error!r}") from None

        return cls(
            kind=kind,
            params=params,
            pair_id=str(pair_id) if pair_id not in (None, "") else None,
            conditions=[Condition.from_dict(c) for c in data.get("conditions") or []],
            condition_operator=_parse_operator(
                data.get("conditionOperator", data.get("condition_operator"))
            ),
            on_error=policy,
            id=str(data.get("id") or _new_id()),
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)

    def describe(self) -> str:
        return f"{self.kind.value}#{self.id[:8]}"


def parse_steps(items: List[Mapping[str, Any]]) -> List[Step]:
    return [item if isinstance(item, Step) else Step.from_dict(item) for item in items]


__all__ = ["Condition", "Step", "parse_kind", "parse_steps"]
