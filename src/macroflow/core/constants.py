"""
常量和枚举定义
"""
from enum import Enum


class StepKind(str, Enum):
    """步骤类型"""
    # 条件块
    IF = "if"
    ELSE_IF = "else-if"
    ELSE = "else"
    END_IF = "end-if"
    ENDIF = "endif"
    # 循环
    WHILE = "while"
    END_WHILE = "end-while"
    LOOP = "loop"
    END_LOOP = "end-loop"
    # 终止
    SUCCESS = "success"
    SKIP = "skip"
    FAIL = "fail"
    # 条件起始（可作为隐式 if）
    IMAGE_MATCH = "image-match"
    GET_VOLUME = "get-volume"
    SOUND_CHECK = "sound-check"
    # 设备动作
    TAP = "tap"
    CLICK = "click"
    LONG_PRESS = "long-press"
    DRAG = "drag"
    SWIPE = "swipe"
    INPUT = "input"
    KEY = "key"
    HOME = "home"
    BACK = "back"
    WAIT = "wait"
    SCREENSHOT = "screenshot"
    LOG = "log"
    TAP_MATCHED_IMAGE = "tap-matched-image"
    # 变量
    SET_VARIABLE = "set-variable"
    CALC_VARIABLE = "calc-variable"


class RunStatus(str, Enum):
    """场景运行状态"""
    RUNNING = "running"
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"
    STOPPED = "stopped"


class ErrorPolicy(str, Enum):
    """单步失败处理策略"""
    CONTINUE = "continue"
    STOP = "stop"
    SKIP = "skip"


class ConditionOperator(str, Enum):
    """条件组合方式"""
    AND = "AND"
    OR = "OR"


# while 循环安全上限（固定值）
MAX_WHILE_ITERATIONS = 1000

CONDITION_STARTERS = frozenset({
    StepKind.IMAGE_MATCH,
    StepKind.GET_VOLUME,
    StepKind.SOUND_CHECK,
})

# 结构化开块（按深度计数）
STRUCTURAL_OPENERS = frozenset({
    StepKind.IF,
    StepKind.WHILE,
    StepKind.LOOP,
})

MID_MARKERS = frozenset({
    StepKind.ELSE_IF,
    StepKind.ELSE,
})

END_IF_KINDS = frozenset({
    StepKind.END_IF,
    StepKind.ENDIF,
})

BLOCK_TERMINATORS = frozenset({
    StepKind.END_IF,
    StepKind.ENDIF,
    StepKind.END_LOOP,
    StepKind.END_WHILE,
})

CONTROL_TERMINATORS = {
    StepKind.SUCCESS: RunStatus.PASS,
    StepKind.SKIP: RunStatus.SKIP,
    StepKind.FAIL: RunStatus.FAIL,
}

# 不能作为条件探测执行的类型
CONTROL_KINDS = (
    STRUCTURAL_OPENERS
    | MID_MARKERS
    | BLOCK_TERMINATORS
    | frozenset(CONTROL_TERMINATORS)
)

# 结束符 -> 对应的开块类型
TERMINATOR_OPENERS = {
    StepKind.END_IF: StepKind.IF,
    StepKind.ENDIF: StepKind.IF,
    StepKind.END_LOOP: StepKind.LOOP,
    StepKind.END_WHILE: StepKind.WHILE,
}
