"""
Tests for the position reindexer: scenarios, laws and edge cases.
"""
import pytest

from apps.board import reindex


def siblings(*ids):
    """Dense sibling set in the given order"""
    return [{'id': sibling_id, 'position': position} for position, sibling_id in enumerate(ids)]


def order(positions):
    """Ids sorted by their position"""
    return [sibling_id for sibling_id, _ in sorted(positions.items(), key=lambda item: item[1])]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Moves inside one parent
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_move_card_up_inside_list():
    """[A:0, B:1, C:2, D:3], move D to 1 -> [A:0, D:1, B:2, C:3]"""
    cards = siblings('A', 'B', 'C', 'D')

    updates = reindex.move_within_parent(cards, 'D', 3, 1)

    assert updates == {'D': 1, 'B': 2, 'C': 3}
    assert reindex.apply_updates(cards, updates) == {'A': 0, 'D': 1, 'B': 2, 'C': 3}


def test_move_card_down_inside_list():
    """Moving down shifts the siblings in between towards the gap"""
    cards = siblings('A', 'B', 'C', 'D')

    updates = reindex.move_within_parent(cards, 'A', 0, 2)

    assert updates == {'A': 2, 'B': 0, 'C': 1}
    assert order(reindex.apply_updates(cards, updates)) == ['B', 'C', 'A', 'D']


def test_move_to_same_position_is_noop():
    """Same position: zero updates, not an error"""
    assert reindex.move_within_parent(siblings('A', 'B', 'C'), 'B', 1, 1) == {}


def test_move_beyond_end_is_clamped():
    cards = siblings('A', 'B', 'C')

    updates = reindex.move_within_parent(cards, 'A', 0, 99)

    assert reindex.apply_updates(cards, updates) == {'B': 0, 'C': 1, 'A': 2}


def test_move_clamped_to_current_position_is_noop():
    assert reindex.move_within_parent(siblings('A', 'B', 'C'), 'C', 2, 10) == {}


def test_move_negative_position_is_clamped_to_zero():
    cards = siblings('A', 'B', 'C')

    updates = reindex.move_within_parent(cards, 'C', 2, -5)

    assert order(reindex.apply_updates(cards, updates)) == ['C', 'A', 'B']


@pytest.mark.parametrize('old_position,new_position', [
    (0, 4), (4, 0), (1, 3), (3, 1), (2, 2), (0, 1), (4, 3),
])
def test_move_round_trip_restores_positions(old_position, new_position):
    """Moving there and back again restores every position"""
    cards = siblings('A', 'B', 'C', 'D', 'E')
    moving = cards[old_position]['id']

    forward = reindex.apply_updates(cards, reindex.move_within_parent(cards, moving, old_position, new_position))
    moved = [{'id': card_id, 'position': position} for card_id, position in forward.items()]
    back = reindex.apply_updates(moved, reindex.move_within_parent(moved, moving, new_position, old_position))

    assert back == {card['id']: card['position'] for card in cards}


def test_moves_keep_positions_dense():
    cards = siblings('A', 'B', 'C', 'D', 'E', 'F')
    for moving, new_position in [('F', 0), ('A', 5), ('C', 2), ('B', 4), ('D', 0)]:
        current = {card['id']: card['position'] for card in cards}
        updates = reindex.move_within_parent(cards, moving, current[moving], new_position)
        cards = [{'id': card_id, 'position': position}
                 for card_id, position in reindex.apply_updates(cards, updates).items()]
        assert reindex.is_dense(card['position'] for card in cards)


def test_only_changed_positions_are_returned():
    cards = siblings('A', 'B', 'C', 'D', 'E')

    updates = reindex.move_within_parent(cards, 'B', 1, 2)

    assert updates == {'B': 2, 'C': 1}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Moves across parents
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_move_across_lists():
    """Source closes its gap, target opens a slot"""
    source = siblings('A', 'B', 'C')
    target = siblings('X', 'Y')

    move = reindex.move_across_parents('B', source, target, 1)

    assert move.position == 1
    assert move.source_updates == {'C': 1}
    assert move.target_updates == {'Y': 2}

    source_after = reindex.apply_updates([card for card in source if card['id'] != 'B'], move.source_updates)
    target_after = reindex.apply_updates(target, move.target_updates)
    target_after['B'] = move.position
    assert source_after == {'A': 0, 'C': 1}
    assert order(target_after) == ['X', 'B', 'Y']
    assert reindex.is_dense(source_after.values())
    assert reindex.is_dense(target_after.values())


def test_move_across_into_empty_list():
    move = reindex.move_across_parents('A', siblings('A', 'B'), [], 5)

    assert move.position == 0
    assert move.source_updates == {'B': 0}
    assert move.target_updates == {}


def test_move_across_to_end_is_clamped_to_length():
    move = reindex.move_across_parents('A', siblings('A'), siblings('X', 'Y', 'Z'), 42)

    assert move.position == 3
    assert move.target_updates == {}


def test_move_across_requires_mover_in_source():
    with pytest.raises(ValueError):
        reindex.move_across_parents('Q', siblings('A', 'B'), siblings('X'), 0)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Appends and deletes
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_next_position():
    assert reindex.next_position([]) == 0
    assert reindex.next_position(siblings('A', 'B', 'C')) == 3


def test_delete_middle_list_repacks():
    """[To Do:0, Doing:1, Done:2], delete Doing -> [To Do:0, Done:1]"""
    lists = siblings('To Do', 'Doing', 'Done')
    survivors = [task_list for task_list in lists if task_list['id'] != 'Doing']

    updates = reindex.repack_after_delete(survivors, 1)

    assert updates == {'Done': 1}
    assert reindex.apply_updates(survivors, updates) == {'To Do': 0, 'Done': 1}


def test_delete_last_needs_no_updates():
    survivors = siblings('A', 'B')

    assert reindex.repack_after_delete(survivors, 2) == {}


def test_append_after_delete_fills_the_end():
    """Delete at k, then append: the new sibling lands at n-1, not at k"""
    cards = siblings('A', 'B', 'C', 'D')
    survivors = [card for card in cards if card['id'] != 'B']
    repacked = reindex.apply_updates(survivors, reindex.repack_after_delete(survivors, 1))

    position = reindex.next_position({'id': card_id, 'position': p} for card_id, p in repacked.items())

    assert position == len(cards) - 1


def test_clamp():
    assert reindex.clamp(5, 3) == 3
    assert reindex.clamp(-1, 3) == 0
    assert reindex.clamp(2, 3) == 2
    assert reindex.clamp(4, -1) == 0


def test_is_dense():
    assert reindex.is_dense([])
    assert reindex.is_dense([2, 0, 1])
    assert not reindex.is_dense([0, 2])
    assert not reindex.is_dense([0, 1, 1])
