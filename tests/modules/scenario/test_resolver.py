import pytest

from macroflow.core.constants import StepKind
from macroflow.modules.scenario.resolver import BlockResolver
from macroflow.modules.scenario.types import Step


def _steps(*items):
    steps = []
    for item in items:
        if isinstance(item, tuple):
            kind, pair_id = item
        else:
            kind, pair_id = item, None
        steps.append(Step(kind=StepKind(kind), pair_id=pair_id))
    return steps


def test_find_block_end_skips_nested_blocks():
    steps = _steps("loop", "loop", "tap", "end-loop", "tap", "end-loop", "home")
    resolver = BlockResolver(steps)

    assert resolver.find_block_end(0, [StepKind.END_LOOP]) == 5
    assert resolver.find_block_end(1, [StepKind.END_LOOP]) == 3


def test_find_block_end_stops_at_branch_markers():
    steps = _steps("if", "tap", "else-if", "tap", "else", "tap", "end-if")
    resolver = BlockResolver(steps)
    branch = [StepKind.ELSE_IF, StepKind.ELSE, StepKind.END_IF]

    assert resolver.find_block_end(0, branch) == 2
    assert resolver.find_block_end(2, branch) == 4
    assert resolver.find_block_end(4, [StepKind.END_IF]) == 6


def test_mid_markers_do_not_change_depth():
    steps = _steps("if", "if", "tap", "else", "tap", "end-if", "end-if")
    resolver = BlockResolver(steps)

    assert resolver.find_block_end(0, [StepKind.END_IF, StepKind.ELSE]) == 6
    assert resolver.find_block_end(1, [StepKind.ELSE]) == 3


def test_end_if_aliases():
    steps = _steps("if", "tap", "endif")
    resolver = BlockResolver(steps)

    assert resolver.find_block_end(0, [StepKind.END_IF]) == 2


def test_missing_terminator_returns_length():
    steps = _steps("while", "tap", "tap")
    resolver = BlockResolver(steps)

    assert resolver.find_block_end(0, [StepKind.END_WHILE]) == len(steps)


def test_mismatched_terminator_returns_length():
    steps = _steps("loop", "tap", "end-while", "end-loop")
    resolver = BlockResolver(steps)

    assert resolver.find_block_end(0, [StepKind.END_LOOP]) == len(steps)


def test_find_block_end_requires_opener():
    resolver = BlockResolver(_steps("tap", "end-loop"))

    with pytest.raises(ValueError):
        resolver.find_block_end(0, [StepKind.END_LOOP])


def test_pair_identity_lookup():
    steps = _steps(("image-match", "p1"), "tap", ("else", "p1"), "tap", ("endif", "p1"), "home")
    resolver = BlockResolver(steps)

    assert resolver.is_paired_block(0)
    assert resolver.opens_block(0)
    assert resolver.find_paired_endif(0) == 4
    assert resolver.find_else_in_block(0, 4) == 2


def test_unpaired_condition_starter_is_leaf():
    steps = _steps("image-match", "tap")
    resolver = BlockResolver(steps)

    assert not resolver.is_paired_block(0)
    assert not resolver.opens_block(0)
    assert resolver.find_paired_endif(0) is None


def test_legacy_end_if_never_pairs_by_identity():
    steps = _steps(("if", "p1"), "tap", ("end-if", "p1"))
    resolver = BlockResolver(steps)

    assert resolver.find_paired_endif(0) is None
    assert not resolver.is_paired_block(0)
    assert resolver.find_block_end(0, [StepKind.END_IF]) == 2


def test_paired_block_nested_inside_loop_counts_depth():
    steps = _steps("loop", ("get-volume", "v"), "tap", ("endif", "v"), "end-loop")
    resolver = BlockResolver(steps)

    assert resolver.find_block_end(0, [StepKind.END_LOOP]) == 4


def test_validate_well_formed():
    steps = _steps(
        "loop",
        "if", "tap", "else-if", "tap", "else", "tap", "end-if",
        ("sound-check", "s"), "tap", ("else", "s"), "home", ("endif", "s"),
        "end-loop",
    )

    assert BlockResolver(steps).validate() == []


def test_validate_reports_problems():
    steps = _steps("end-loop", "else", "while", "tap", "end-loop", "loop")
    problems = BlockResolver(steps).validate()

    assert any("step 0" in p and "no opening" in p for p in problems)
    assert any("step 1" in p and "outside" in p for p in problems)
    assert any("step 4" in p and "closes 'while'" in p for p in problems)
    assert any("step 5" in p and "never closed" in p for p in problems)


def test_validate_accepts_untagged_markers_in_paired_block():
    steps = _steps(("if", "a"), "tap", "else-if", "tap", "else", "tap", ("endif", "a"))

    assert BlockResolver(steps).validate() == []


def test_validate_flags_foreign_pair_id_on_marker():
    steps = _steps(("if", "a"), "tap", ("else", "b"), "tap", ("endif", "a"))

    assert any("step 2" in p and "'b'" in p for p in BlockResolver(steps).validate())


def test_find_else_falls_back_to_untagged_else():
    steps = _steps(("if", "a"), "tap", "else", "tap", ("endif", "a"))
    resolver = BlockResolver(steps)

    assert resolver.find_paired_endif(0) == 4
    assert resolver.find_else_in_block(0, 4) == 2


def test_find_else_prefers_same_pair_else():
    steps = _steps(("if", "a"), "else", ("else", "a"), ("endif", "a"))

    assert BlockResolver(steps).find_else_in_block(0, 3) == 2


def test_branch_markers_skip_nested_blocks():
    steps = _steps(
        ("if", "a"),
        "if", "tap", "else", "tap", "end-if",
        ("get-volume", "v"), "else", ("endif", "v"),
        "else-if", "tap", "else", "home",
        ("endif", "a"),
    )
    resolver = BlockResolver(steps)

    assert resolver.find_branch_markers(0, 13) == [9, 11]
    assert resolver.find_else_in_block(0, 13) == 11
