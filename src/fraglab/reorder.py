"""Drag-gesture adapter over ``SegmentModel``.

Pointer geometry is resolved here into discrete ``(target_id, side)``
decisions; the model itself never sees coordinates. Each completed gesture
applies at most one model operation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from fraglab.errors import InvalidOperationError
from fraglab.segments import (
    DEFAULT_FILLER_VARIANT,
    FILLER,
    SOURCE_CHUNK,
    Segment,
    SegmentKind,
    SegmentModel,
    Side,
)

log = logging.getLogger(__name__)

type DragOrigin = Literal["model", "palette"]
type DropAction = Literal["move", "insert", "cancel"]


def side_from_geometry(cursor_x: float, target_left: float, target_width: float) -> Side:
    """``before`` when the cursor is left of the target's horizontal midpoint."""
    return "before" if cursor_x < target_left + target_width / 2 else "after"


@dataclass(frozen=True, slots=True)
class DragSource:
    """What is being dragged; fixed for the whole gesture."""

    origin: DragOrigin
    kind: SegmentKind
    size_bytes: int
    segment_id: str | None = None
    source_index: int | None = None
    filler_id: int | None = None
    filler_variant: str | None = None


@dataclass(frozen=True, slots=True)
class HoverDecision:
    target_id: str
    side: Side


@dataclass(frozen=True, slots=True)
class DropOutcome:
    action: DropAction
    segment: Segment | None = None
    target_id: str | None = None
    side: Side | None = None


class ReorderController:
    """Turns begin/hover/drop/cancel gestures into ``SegmentModel`` mutations."""

    def __init__(self, model: SegmentModel) -> None:
        self._model = model
        self._source: DragSource | None = None
        self._last_hover: HoverDecision | None = None
        self.offset_x: float = 0.0

    @property
    def dragging(self) -> DragSource | None:
        return self._source

    @property
    def last_hover(self) -> HoverDecision | None:
        return self._last_hover

    # ------------------------------------------------------------------
    # Gesture start
    # ------------------------------------------------------------------
    def begin_drag(self, segment_id: str) -> DragSource:
        """Start dragging an element already placed in the model."""
        self._require_idle()
        seg = self._model.get(segment_id)
        self._start(
            DragSource(
                origin="model",
                kind=seg.kind,
                size_bytes=seg.size_bytes,
                segment_id=seg.segment_id,
                source_index=seg.source_index,
                filler_id=seg.filler_id,
                filler_variant=seg.filler_variant,
            )
        )
        return self._source  # type: ignore[return-value]

    def begin_palette_drag(
        self,
        kind: SegmentKind = FILLER,
        variant: str | None = DEFAULT_FILLER_VARIANT,
        *,
        size_bytes: int | None = None,
    ) -> DragSource:
        """Start dragging a not-yet-placed element from the palette."""
        self._require_idle()
        self._start(
            DragSource(
                origin="palette",
                kind=kind,
                size_bytes=size_bytes or self._model.filler_size,
                filler_variant=variant if kind == FILLER else None,
            )
        )
        return self._source  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Gesture progress
    # ------------------------------------------------------------------
    def hover(
        self,
        target_id: str,
        cursor_x: float,
        target_left: float,
        target_width: float,
    ) -> tuple[HoverDecision, bool]:
        """Record the hovered target; returns the decision and whether it changed."""
        decision = HoverDecision(
            target_id=target_id,
            side=side_from_geometry(cursor_x, target_left, target_width),
        )
        changed = decision != self._last_hover
        self._last_hover = decision
        return decision, changed

    def track(self, offset_x: float) -> None:
        """Transient horizontal offset of the dragged element."""
        if self._source is not None:
            self.offset_x = offset_x

    # ------------------------------------------------------------------
    # Gesture end
    # ------------------------------------------------------------------
    def drop(self, target_id: str | None = None, side: Side | None = None) -> DropOutcome:
        """Finish the gesture, applying exactly one model operation.

        Without an explicit target the last hover decision is used; with
        neither, the drop behaves as a cancel.
        """
        source = self._source
        if source is None:
            raise InvalidOperationError("drop without an active drag")

        if target_id is None and self._last_hover is not None:
            target_id = self._last_hover.target_id
            side = side or self._last_hover.side
        try:
            if target_id is None:
                return DropOutcome(action="cancel")
            side = side or "before"
            if source.origin == "model":
                seg = self._model.move_segment(source.segment_id, target_id, side)  # type: ignore[arg-type]
                return DropOutcome(action="move", segment=seg, target_id=target_id, side=side)
            if source.kind == SOURCE_CHUNK:
                raise InvalidOperationError(
                    "source chunks cannot be dropped from the palette; they are placed by initialize"
                )
            target_index = self._model.index_of(target_id)
            insertion_index = target_index if side == "before" else target_index + 1
            seg = self._model.insert_filler(
                source.filler_variant,
                insertion_index,
                size_bytes=source.size_bytes,
            )
            return DropOutcome(action="insert", segment=seg, target_id=target_id, side=side)
        finally:
            self._end()

    def cancel(self) -> DropOutcome:
        """Abandon the gesture without touching the model."""
        self._end()
        return DropOutcome(action="cancel")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _require_idle(self) -> None:
        if self._source is not None:
            raise InvalidOperationError("a drag is already in progress")

    def _start(self, source: DragSource) -> None:
        self._source = source
        self._last_hover = None
        self.offset_x = 0.0
        log.debug("Drag started: %s", source)

    def _end(self) -> None:
        self._source = None
        self._last_hover = None
        self.offset_x = 0.0
