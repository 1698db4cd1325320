"""
Tests for the identifier adapters of both backends.
"""
import pytest
from bson import ObjectId

from apps.core.exceptions import ValidationError
from apps.core.identifiers import DocumentIdentifiers, RelationalIdentifiers


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Relational ids
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_relational_ids_are_integers():
    ids = RelationalIdentifiers()

    assert ids.normalize_id(7) == 7
    assert ids.normalize_id('7') == 7
    assert ids.normalize_id(' 42 ') == 42


@pytest.mark.parametrize('raw', [0, -3, 'abc', '1.5', '', None, True, 3.0, '507f1f77bcf86cd799439011', '²', '١'])
def test_relational_rejects_malformed_ids(raw):
    with pytest.raises(ValidationError):
        RelationalIdentifiers().normalize_id(raw)


def test_relational_ids_equal_across_representations():
    ids = RelationalIdentifiers()

    assert ids.ids_equal(5, '5')
    assert not ids.ids_equal(5, 6)
    assert not ids.ids_equal(5, None)
    assert not ids.ids_equal(5, 'five')


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Document ids
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_document_ids_are_hex_strings():
    ids = DocumentIdentifiers()
    oid = ObjectId()

    assert ids.normalize_id(oid) == str(oid)
    assert ids.normalize_id(str(oid)) == str(oid)
    assert ids.normalize_id(str(oid).upper()) == str(oid)
    assert ids.to_native(str(oid)) == oid


@pytest.mark.parametrize('raw', [12, '12', 'not-an-object-id', '', None])
def test_document_rejects_malformed_ids(raw):
    with pytest.raises(ValidationError):
        DocumentIdentifiers().normalize_id(raw)


def test_document_ids_equal_between_objectid_and_string():
    ids = DocumentIdentifiers()
    oid = ObjectId()

    assert ids.ids_equal(oid, str(oid))
    assert not ids.ids_equal(oid, ObjectId())
    assert not ids.ids_equal(oid, 1)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Document normalization
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_normalize_document_renames_id_and_strips_internals():
    ids = DocumentIdentifiers()
    board_oid, owner_oid, member_oid = ObjectId(), ObjectId(), ObjectId()
    raw = {
        '_id': board_oid,
        '__v': 0,
        '_lock': ObjectId(),
        '_lock_at': 123.0,
        'title': 'Roadmap',
        'owner_id': owner_oid,
        'members': [{'user_id': member_oid, 'role': 'viewer'}],
    }

    record = ids.normalize_document(raw)

    assert record == {
        'id': str(board_oid),
        'title': 'Roadmap',
        'owner_id': str(owner_oid),
        'members': [{'user_id': str(member_oid), 'role': 'viewer'}],
    }


def test_normalize_document_keeps_missing_references_empty():
    record = DocumentIdentifiers().normalize_document({'_id': ObjectId(), 'list_id': None})

    assert record['list_id'] is None


def test_normalize_none_is_none():
    assert RelationalIdentifiers().normalize_document(None) is None


def test_normalize_relational_row():
    record = RelationalIdentifiers().normalize_document({'id': 3, 'board_id': '9', 'labels': ['red']})

    assert record == {'id': 3, 'board_id': 9, 'labels': ['red']}
