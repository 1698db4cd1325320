# apps/board/reindex.py

"""
Position reindexer

Lists inside a board and cards inside a list keep dense, zero-based
positions (0..n-1). Every function here is pure: it takes the current sibling
set as a sequence of records with ``id`` and ``position`` and returns only the
positions that change, as ``{id: new_position}``. Writing the result is the
store's job, and the store applies one result as a single atomic unit.
"""

from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterable, Mapping, Sequence

PositionUpdates = Dict[Hashable, int]


@dataclass(frozen=True)
class CrossParentMove:
    """Result of moving one entity from a source parent to a target parent"""

    moving_id: Hashable
    position: int
    source_updates: PositionUpdates = field(default_factory=dict)
    target_updates: PositionUpdates = field(default_factory=dict)

    @property
    def changes(self):
        return len(self.source_updates) + len(self.target_updates) + 1


def clamp(position: int, upper: int) -> int:
    """Clamp ``position`` into [0, upper]"""
    if upper < 0:
        return 0
    return max(0, min(int(position), upper))


def next_position(siblings: Iterable[Mapping]) -> int:
    """Position for an appended sibling: 0 when empty, else max + 1"""
    positions = [sibling['position'] for sibling in siblings]
    return max(positions) + 1 if positions else 0


def move_within_parent(
    siblings: Sequence[Mapping],
    moving_id: Hashable,
    old_position: int,
    new_position: int,
) -> PositionUpdates:
    """
    Move one sibling to ``new_position`` inside the same parent.

    Siblings between the old and the new slot shift by one towards the gap
    the mover left. Positions outside that window are untouched.
    """
    new_position = clamp(new_position, len(siblings) - 1)
    if new_position == old_position:
        return {}

    updates = {}
    for sibling in siblings:
        sibling_id = sibling['id']
        position = sibling['position']

        if sibling_id == moving_id:
            target = new_position
        elif old_position < position <= new_position:
            target = position - 1
        elif new_position <= position < old_position:
            target = position + 1
        else:
            continue

        if target != position:
            updates[sibling_id] = target
    return updates


def move_across_parents(
    moving_id: Hashable,
    source_siblings: Sequence[Mapping],
    target_siblings: Sequence[Mapping],
    target_position: int,
) -> CrossParentMove:
    """
    Move one entity out of its current parent into another one.

    The source closes the gap, the target opens a slot at ``target_position``
    (clamped to [0, len(target_siblings)]).
    """
    old_position = None
    for sibling in source_siblings:
        if sibling['id'] == moving_id:
            old_position = sibling['position']
            break
    if old_position is None:
        raise ValueError(f'{moving_id!r} is not part of the source siblings')

    target_position = clamp(target_position, len(target_siblings))

    source_updates = {
        sibling['id']: sibling['position'] - 1
        for sibling in source_siblings
        if sibling['id'] != moving_id and sibling['position'] > old_position
    }
    target_updates = {
        sibling['id']: sibling['position'] + 1
        for sibling in target_siblings
        if sibling['position'] >= target_position
    }
    return CrossParentMove(
        moving_id=moving_id,
        position=target_position,
        source_updates=source_updates,
        target_updates=target_updates,
    )


def repack_after_delete(siblings: Iterable[Mapping], removed_position: int) -> PositionUpdates:
    """Close the gap left by a deleted sibling"""
    return {
        sibling['id']: sibling['position'] - 1
        for sibling in siblings
        if sibling['position'] > removed_position
    }


def apply_updates(siblings: Iterable[Mapping], updates: Mapping) -> Dict[Hashable, int]:
    """In-memory view of ``siblings`` after ``updates``, as {id: position}"""
    return {
        sibling['id']: updates.get(sibling['id'], sibling['position'])
        for sibling in siblings
    }


def is_dense(positions: Iterable[int]) -> bool:
    """True when ``positions`` is exactly 0..n-1"""
    ordered = sorted(positions)
    return ordered == list(range(len(ordered)))
