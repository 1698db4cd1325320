"""
Document store specifics: parent leases and compensation of failed batches.
"""
import time
from unittest import mock

import mongomock
import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

from apps.board.stores import document
from apps.core.exceptions import ConflictError, InfrastructureError
from apps.core.identifiers import DocumentIdentifiers


@pytest.fixture
def seeded(document_stores):
    stores = document_stores
    owner = stores.users.create('owner', 'owner@example.com', 'hash')
    board = stores.boards.create('Board', owner['id'])
    first = stores.lists.create(board['id'], 'L')
    second = stores.lists.create(board['id'], 'M')
    cards = {title: stores.cards.create(first['id'], title) for title in 'ABCD'}
    return stores, first, second, cards


def layout(stores, list_id):
    return [(card['title'], card['position']) for card in stores.cards.find_by_list(list_id)]


@pytest.fixture
def failing_ordered_batches(monkeypatch):
    """Ordered batches apply their first write, then fail; unordered ones pass through"""
    real_bulk_write = mongomock.Collection.bulk_write

    def bulk_write(self, requests, ordered=True, **kwargs):
        if ordered:
            real_bulk_write(self, requests[:1], ordered=True, **kwargs)
            raise OperationFailure('interrupted at operation 1')
        return real_bulk_write(self, requests, ordered=ordered, **kwargs)

    monkeypatch.setattr(mongomock.Collection, 'bulk_write', bulk_write)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Compensation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_failed_reorder_restores_positions(seeded, failing_ordered_batches):
    stores, first, _, cards = seeded

    with pytest.raises(InfrastructureError):
        stores.cards.move_in_list(cards['D']['id'], 0)

    assert layout(stores, first['id']) == [('A', 0), ('B', 1), ('C', 2), ('D', 3)]


def test_failed_cross_list_move_restores_both_lists(seeded, failing_ordered_batches):
    stores, first, second, cards = seeded

    with pytest.raises(InfrastructureError):
        stores.cards.move_to_list(cards['A']['id'], second['id'], 0)

    assert layout(stores, first['id']) == [('A', 0), ('B', 1), ('C', 2), ('D', 3)]
    assert layout(stores, second['id']) == []


def test_failed_delete_keeps_the_card(seeded, failing_ordered_batches):
    stores, first, _, cards = seeded

    with pytest.raises(InfrastructureError):
        stores.cards.delete(cards['A']['id'])

    assert layout(stores, first['id']) == [('A', 0), ('B', 1), ('C', 2), ('D', 3)]


def test_failed_card_cleanup_keeps_the_list(seeded, monkeypatch):
    stores, first, second, cards = seeded
    real_delete_many = mongomock.Collection.delete_many

    def delete_many(self, filter, *args, **kwargs):
        if self.name == 'cards':
            raise OperationFailure('interrupted')
        return real_delete_many(self, filter, *args, **kwargs)

    monkeypatch.setattr(mongomock.Collection, 'delete_many', delete_many)

    with pytest.raises(InfrastructureError):
        stores.lists.delete(first['id'])

    board_lists = stores.lists.find_by_board(first['board_id'])
    assert [(task_list['title'], task_list['position']) for task_list in board_lists] == [('L', 0), ('M', 1)]
    assert layout(stores, first['id']) == [('A', 0), ('B', 1), ('C', 2), ('D', 3)]


def test_failed_batch_inside_transaction_is_not_compensated():
    collection = mock.Mock()
    collection.bulk_write.side_effect = OperationFailure('aborted')
    store = document.DocumentStore(db=mock.Mock(), ids=DocumentIdentifiers(), use_transactions=True)
    card_id = str(ObjectId())

    with pytest.raises(InfrastructureError):
        store._write_batch(collection, {card_id: {'position': 1}}, {card_id: {'position': 0}}, session=object())

    assert collection.bulk_write.call_count == 1


def test_unit_of_work_opens_a_transaction():
    db = mock.MagicMock()
    store = document.DocumentStore(db=db, ids=DocumentIdentifiers(), use_transactions=True)

    with store._unit_of_work() as session:
        assert session is db.client.start_session.return_value.__enter__.return_value

    session.start_transaction.assert_called_once_with()


def test_unit_of_work_without_transactions_has_no_session():
    store = document.DocumentStore(db=mock.Mock(), ids=DocumentIdentifiers())

    with store._unit_of_work() as session:
        assert session is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Parent leases
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_lease_is_released_after_each_operation(seeded):
    stores, first, _, cards = seeded
    db = stores.cards.db

    stores.cards.move_in_list(cards['C']['id'], 0)
    stores.lists.move(first['id'], 1)

    for collection in (db.lists, db.boards):
        assert collection.count_documents({'_lock': {'$exists': True}}) == 0


def test_lease_is_released_when_the_operation_fails(seeded, failing_ordered_batches):
    stores, first, _, cards = seeded

    with pytest.raises(InfrastructureError):
        stores.cards.move_in_list(cards['B']['id'], 3)

    assert '_lock' not in stores.cards.db.lists.find_one({'_id': ObjectId(first['id'])})


def test_busy_parent_gives_up(seeded, monkeypatch):
    stores, first, _, cards = seeded
    monkeypatch.setattr(document, 'LOCK_ATTEMPTS', 2)
    monkeypatch.setattr(document, 'LOCK_BACKOFF_SECONDS', 0)
    stores.cards.db.lists.update_one(
        {'_id': ObjectId(first['id'])},
        {'$set': {'_lock': ObjectId(), '_lock_at': time.time()}},
    )

    with pytest.raises(InfrastructureError, match='busy'):
        stores.cards.move_in_list(cards['D']['id'], 0)

    assert layout(stores, first['id']) == [('A', 0), ('B', 1), ('C', 2), ('D', 3)]


def test_stale_lease_is_taken_over(seeded):
    stores, first, _, cards = seeded
    stores.cards.db.lists.update_one(
        {'_id': ObjectId(first['id'])},
        {'$set': {'_lock': ObjectId(), '_lock_at': time.time() - document.LOCK_TTL_SECONDS - 1}},
    )

    stores.cards.move_in_list(cards['D']['id'], 0)

    assert layout(stores, first['id']) == [('D', 0), ('A', 1), ('B', 2), ('C', 3)]


def test_records_hide_lease_fields(seeded):
    stores, first, _, _ = seeded
    stores.cards.db.lists.update_one(
        {'_id': ObjectId(first['id'])},
        {'$set': {'_lock': ObjectId(), '_lock_at': time.time()}},
    )

    record = stores.lists.find_by_id(first['id'])

    assert '_lock' not in record
    assert '_lock_at' not in record
    assert '_id' not in record
    assert record['id'] == first['id']


@pytest.fixture
def card_moved_before_lock(seeded, monkeypatch):
    """Another writer moves card A to the second list just before the source list is locked"""
    stores, first, second, cards = seeded
    real_parent_lock = stores.cards._parent_lock

    def parent_lock(collection, parent_oid, not_found_message):
        if collection.name == 'lists' and parent_oid == ObjectId(first['id']):
            stores.cards.db.cards.update_one(
                {'_id': ObjectId(cards['A']['id'])},
                {'$set': {'list_id': ObjectId(second['id']), 'position': 0}},
            )
        return real_parent_lock(collection, parent_oid, not_found_message)

    monkeypatch.setattr(stores.cards, '_parent_lock', parent_lock)
    return seeded


@pytest.mark.parametrize('operation', [
    lambda cards, card_id: cards.move_in_list(card_id, 2),
    lambda cards, card_id: cards.delete(card_id),
])
def test_card_moved_by_another_writer_is_a_conflict(card_moved_before_lock, operation):
    stores, first, second, cards = card_moved_before_lock

    with pytest.raises(ConflictError, match='try again'):
        operation(stores.cards, cards['A']['id'])

    assert layout(stores, second['id']) == [('A', 0)]
    assert [title for title, _ in layout(stores, first['id'])] == ['B', 'C', 'D']
