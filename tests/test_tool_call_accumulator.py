from __future__ import annotations

import pytest

from taskpilot.llm.contracts import LLMToolCall, ToolArgumentsError, ToolCallDelta
from taskpilot.llm.tool_calls import ToolCallAccumulator


def test_fragments_are_concatenated_per_index() -> None:
    accumulator = ToolCallAccumulator()
    accumulator.feed_all(
        [
            ToolCallDelta(index=0, id="call_a", name="create_task"),
            ToolCallDelta(index=1, id="call_b", name="delete_task"),
            ToolCallDelta(index=0, arguments='{"title": '),
            ToolCallDelta(index=1, arguments='{"task_title": "Old"}'),
            ToolCallDelta(index=0, arguments='"Buy milk"}'),
        ]
    )

    calls = accumulator.finalize()

    assert len(accumulator) == 2
    assert calls[0] == LLMToolCall(
        id="call_a",
        name="create_task",
        arguments='{"title": "Buy milk"}',
    )
    assert calls[0].parse_arguments() == {"title": "Buy milk"}
    assert calls[1].parse_arguments() == {"task_title": "Old"}


def test_first_id_and_name_win() -> None:
    accumulator = ToolCallAccumulator()
    accumulator.feed(ToolCallDelta(index=0, id="call_1", name="update_task"))
    accumulator.feed(ToolCallDelta(index=0, id="call_2", name="delete_task"))

    [call] = accumulator.finalize()

    assert call.id == "call_1"
    assert call.name == "update_task"


def test_missing_id_gets_index_based_default() -> None:
    accumulator = ToolCallAccumulator()
    accumulator.feed(ToolCallDelta(index=3, name="create_task", arguments="{}"))

    [call] = accumulator.finalize()

    assert call.id == "call_3"


def test_empty_accumulator_is_falsy() -> None:
    accumulator = ToolCallAccumulator()

    assert not accumulator
    assert accumulator.finalize() == []


def test_malformed_arguments_raise_on_parse() -> None:
    call = LLMToolCall(id="call_1", name="create_task", arguments='{"title": ')

    with pytest.raises(ToolArgumentsError):
        call.parse_arguments()

    with pytest.raises(ToolArgumentsError):
        LLMToolCall(id="call_2", name="create_task", arguments="[1, 2]").parse_arguments()

    assert LLMToolCall(id="call_3", name="create_task").parse_arguments() == {}
