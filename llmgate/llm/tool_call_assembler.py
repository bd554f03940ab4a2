"""
Assembles streaming tool-call fragments into complete ToolCall objects.

Design goals:
  - Accumulate fragments keyed by the provider-supplied integer ``index``.
  - ``id``, ``type`` and ``function.name`` are first-write-wins: a later
    differing value is recorded in ``self.errors`` and ignored.
  - ``function.arguments`` fragments are appended verbatim in arrival order.
    The assembled string is never parsed here.
  - ``finish()`` materializes one ``ToolCall`` per accumulator that has an
    ``id``, ordered by index.

One assembler belongs to exactly one streaming call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from llmgate.llm.types import FunctionCall, ToolCall

logger = logging.getLogger(__name__)


@dataclass
class ToolCallFragment:
    """One entry of a frame's ``delta.tool_calls`` array."""

    index: int
    id: str | None = None
    type: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass
class _Accumulator:
    id: str | None = None
    type: str | None = None
    name: str | None = None
    args: list[str] = field(default_factory=list)


class ToolCallAssembler:
    """Buffers tool-call fragments and emits finished ``ToolCall`` objects."""

    def __init__(self) -> None:
        self._buf: dict[int, _Accumulator] = {}
        self.errors: list[str] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._buf)

    def feed(self, fragment: ToolCallFragment) -> None:
        """Merge a single fragment into the accumulator for its index."""
        acc = self._buf.setdefault(fragment.index, _Accumulator())

        acc.id = self._set_once(fragment.index, "id", acc.id, fragment.id)
        acc.type = self._set_once(fragment.index, "type", acc.type, fragment.type)
        acc.name = self._set_once(fragment.index, "name", acc.name, fragment.name)

        if fragment.arguments:
            acc.args.append(fragment.arguments)

    def finish(self) -> list[ToolCall]:
        """
        Materialize every accumulator that has an ``id``.

        Accumulators without an id are dropped (and reported in
        ``self.errors``).
        """
        calls: list[ToolCall] = []
        for idx in sorted(self._buf):
            acc = self._buf[idx]
            if acc.id is None:
                self.errors.append(f"tool_call_missing_id idx={idx}")
                continue
            calls.append(
                ToolCall(
                    id=acc.id,
                    type=acc.type or "function",
                    function=FunctionCall(
                        name=acc.name or "",
                        arguments="".join(acc.args),
                    ),
                )
            )
        return calls

    def reset(self) -> None:
        """Discard all accumulated state."""
        self._buf.clear()
        self.errors.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_once(
        self, idx: int, field_name: str, current: str | None, incoming: str | None
    ) -> str | None:
        if incoming is None or incoming == "":
            return current
        if current is None:
            return incoming
        if incoming != current:
            msg = (
                f"tool_call_field_conflict idx={idx} field={field_name} "
                f"kept={current!r} ignored={incoming!r}"
            )
            logger.warning("Tool-call fragment conflict: %s", msg)
            self.errors.append(msg)
        return current
