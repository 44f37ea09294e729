"""Compact text layouts for scripted compositions.

A layout lists segments left to right, comma separated: an integer is a
source chunk index, ``F`` is a filler of the default variant and
``F:<variant>`` a filler of the named variant. Every source chunk must be
listed exactly once, e.g. ``"0,1,F,2,F:zero_fill,3"``.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from fraglab.errors import InvalidInputError
from fraglab.segments import FILLER_VARIANTS, SegmentModel, chunk_segment_id


@dataclass(frozen=True, slots=True)
class LayoutToken:
    source_index: int | None = None
    filler_variant: str | None = None

    @property
    def is_filler(self) -> bool:
        return self.source_index is None


def parse_layout(text: str) -> tuple[LayoutToken, ...]:
    tokens: list[LayoutToken] = []
    for raw in text.split(","):
        item = raw.strip()
        if not item:
            continue
        head, _, variant = item.partition(":")
        if head.upper() == "F":
            tokens.append(LayoutToken(filler_variant=variant.strip() or None))
            continue
        try:
            index = int(head)
        except ValueError as exc:
            raise InvalidInputError(f"invalid layout token {item!r}") from exc
        if index < 0:
            raise InvalidInputError(f"chunk index must be >= 0, got {index}")
        tokens.append(LayoutToken(source_index=index))
    return tuple(tokens)


def apply_layout(model: SegmentModel, tokens: tuple[LayoutToken, ...]) -> None:
    """Reorder chunks and insert fillers so the model matches ``tokens``.

    The model must already be initialized; existing fillers are cleared.
    """
    chunk_count = sum(1 for seg in model.to_sequence() if not seg.is_filler)
    listed = Counter(t.source_index for t in tokens if not t.is_filler)
    expected = set(range(chunk_count))
    duplicates = sorted(i for i, n in listed.items() if n > 1)
    if duplicates:
        raise InvalidInputError(f"layout lists chunks more than once: {duplicates}")
    if set(listed) != expected:
        missing = sorted(expected - set(listed))
        unknown = sorted(set(listed) - expected)
        raise InvalidInputError(
            f"layout must list every chunk 0..{chunk_count - 1} once "
            f"(missing={missing}, unknown={unknown})"
        )
    bad_variants = sorted(
        {t.filler_variant for t in tokens if t.filler_variant and t.filler_variant not in FILLER_VARIANTS}
    )
    if bad_variants:
        raise InvalidInputError(f"unknown filler variants in layout: {bad_variants}")

    model.clear_fillers()
    for position, token in enumerate(tokens):
        if token.is_filler:
            model.insert_filler(token.filler_variant, position)
            continue
        current = model.index_of(chunk_segment_id(token.source_index))  # type: ignore[arg-type]
        if current != position:
            model.move(current, position, "before")
