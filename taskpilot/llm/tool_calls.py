from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from taskpilot.llm.contracts import LLMToolCall, ToolCallDelta


@dataclass(slots=True)
class _PartialToolCall:
    id: str = ""
    name: str = ""
    argument_buffer: list[str] = field(default_factory=list)


class ToolCallAccumulator:
    """Reassembles streamed tool-call fragments keyed by their integer index.

    Argument fragments are concatenated per index; ids and names keep the first
    non-empty value seen. Arguments stay raw until the caller parses them after
    the stream has ended.
    """

    def __init__(self) -> None:
        self._partials: dict[int, _PartialToolCall] = {}

    def __bool__(self) -> bool:
        return bool(self._partials)

    def __len__(self) -> int:
        return len(self._partials)

    def feed(self, delta: ToolCallDelta) -> None:
        partial = self._partials.setdefault(delta.index, _PartialToolCall())
        if delta.id and not partial.id:
            partial.id = delta.id
        if delta.name and not partial.name:
            partial.name = delta.name
        if delta.arguments:
            partial.argument_buffer.append(delta.arguments)

    def feed_all(self, deltas: Iterable[ToolCallDelta]) -> None:
        for delta in deltas:
            self.feed(delta)

    def finalize(self) -> list[LLMToolCall]:
        calls: list[LLMToolCall] = []
        for index in sorted(self._partials):
            partial = self._partials[index]
            calls.append(
                LLMToolCall(
                    id=partial.id or f"call_{index}",
                    name=partial.name,
                    arguments="".join(partial.argument_buffer),
                )
            )
        return calls
