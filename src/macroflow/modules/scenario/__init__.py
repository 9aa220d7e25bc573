from .loader import Scenario, ScenarioLoader
from .resolver import BlockResolver
from .types import Condition, Step, parse_kind, parse_steps

__all__ = [
    "Scenario",
    "ScenarioLoader",
    "BlockResolver",
    "Condition",
    "Step",
    "parse_kind",
    "parse_steps",
]
