# apps/board/stores/document.py

"""
Document entity stores (pymongo)

Collections: ``users``, ``boards`` (embedding ``members``), ``lists`` and
``cards`` (embedding ``comments``).

Sibling sets are serialized with a lease on the parent document (board for
lists, list for cards) taken with ``find_one_and_update``. Position changes of
one operation go out as a single ordered ``bulk_write``; when no server-side
transaction is available and the batch fails, the previous values are written
back before the error is raised.
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, UpdateOne
from pymongo.errors import DuplicateKeyError, PyMongoError

from apps.core.exceptions import (
    ConflictError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from apps.core.identifiers import DocumentIdentifiers

from .. import reindex
from .base import (
    DEFAULT_BACKGROUND,
    BoardStore,
    CardStore,
    ListStore,
    Stores,
    UserStore,
    WriteResult,
)

logger = logging.getLogger(__name__)

LOCK_TTL_SECONDS = 30
LOCK_ATTEMPTS = 40
LOCK_BACKOFF_SECONDS = 0.05

NO_PASSWORD = {'password': 0}
NO_MEMBERS = {'members': 0}
NO_COMMENTS = {'comments': 0}


def _now():
    return datetime.now(timezone.utc)


def _session(session):
    """Keyword arguments for a pymongo call, with the session only when there is one"""
    return {'session': session} if session is not None else {}


def translate_errors(method):
    """Map pymongo failures onto the error taxonomy at the store boundary"""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except DuplicateKeyError as exc:
            logger.warning('Duplicate key in %s: %s', method.__qualname__, exc)
            raise ConflictError() from exc
        except PyMongoError as exc:
            logger.exception('Document store error in %s', method.__qualname__)
            raise InfrastructureError() from exc

    return wrapper


def ensure_indexes(db):
    db.users.create_index([('username', ASCENDING)], unique=True)
    db.users.create_index([('email', ASCENDING)], unique=True)
    db.boards.create_index([('owner_id', ASCENDING)])
    db.boards.create_index([('members.user_id', ASCENDING)])
    db.lists.create_index([('board_id', ASCENDING), ('position', ASCENDING)])
    db.cards.create_index([('list_id', ASCENDING), ('position', ASCENDING)])


class DocumentStore:
    """Shared plumbing: id conversion, parent leases, batched position writes"""

    def __init__(self, db, ids, use_transactions=False):
        self.db = db
        self.ids = ids
        self.use_transactions = use_transactions

    def _oid(self, raw):
        return self.ids.to_native(raw)

    def _record(self, doc):
        return self.ids.normalize_document(doc)

    def _records(self, cursor):
        return self.ids.normalize_documents(cursor)

    @contextmanager
    def _parent_lock(self, collection, parent_oid, not_found_message):
        """Exclusive lease on a parent document for the duration of the block"""
        token = ObjectId()
        for attempt in range(LOCK_ATTEMPTS):
            now = time.time()
            acquired = collection.find_one_and_update(
                {
                    '_id': parent_oid,
                    '$or': [{'_lock': None}, {'_lock_at': {'$lt': now - LOCK_TTL_SECONDS}}],
                },
                {'$set': {'_lock': token, '_lock_at': now}},
                projection={'_id': 1},
            )
            if acquired is not None:
                break
            if collection.count_documents({'_id': parent_oid}, limit=1) == 0:
                raise NotFoundError(not_found_message)
            time.sleep(LOCK_BACKOFF_SECONDS * (attempt + 1))
        else:
            logger.error('Could not lock %s %s after %d attempts', collection.name, parent_oid, LOCK_ATTEMPTS)
            raise InfrastructureError('The board is busy, try again')

        try:
            yield
        finally:
            collection.update_one({'_id': parent_oid, '_lock': token}, {'$unset': {'_lock': '', '_lock_at': ''}})

    @contextmanager
    def _unit_of_work(self):
        """Server-side transaction when configured, otherwise no session"""
        if not self.use_transactions:
            yield None
            return
        with self.db.client.start_session() as session:
            with session.start_transaction():
                yield session

    def _write_batch(self, collection, changes, originals, session=None, finish=None):
        """
        Write ``{id: fields}`` as one ordered batch, then run ``finish``.

        Without a transaction a failure restores ``originals`` for the
        documents in ``changes`` before InfrastructureError is raised.
        """
        now = _now()
        requests = [
            UpdateOne({'_id': self._oid(pk)}, {'$set': dict(fields, updated_at=now)})
            for pk, fields in changes.items()
        ]
        try:
            if requests:
                collection.bulk_write(requests, ordered=True, **_session(session))
            if finish is not None:
                finish()
        except PyMongoError as exc:
            logger.exception('Batch write on %s failed', collection.name)
            if session is None:
                self._restore(collection, changes, originals)
            raise InfrastructureError() from exc

    def _restore(self, collection, changes, originals):
        requests = [
            UpdateOne({'_id': self._oid(pk)}, {'$set': originals[pk]})
            for pk in changes
            if pk in originals
        ]
        if not requests:
            return
        try:
            collection.bulk_write(requests, ordered=False)
        except PyMongoError:
            logger.critical('Could not restore positions on %s for %s', collection.name, list(changes))

    def _siblings(self, collection, query):
        cursor = collection.find(query, {'position': 1}).sort([('position', ASCENDING), ('_id', ASCENDING)])
        return [{'id': self.ids.normalize_id(doc['_id']), 'position': doc['position']} for doc in cursor]


def _position_changes(updates):
    return {pk: {'position': position} for pk, position in updates.items()}


def _position_originals(siblings):
    return {sibling['id']: {'position': sibling['position']} for sibling in siblings}


class DocumentUserStore(DocumentStore, UserStore):

    def _projection(self, with_password):
        return None if with_password else NO_PASSWORD

    @translate_errors
    def find_by_id(self, user_id):
        return self._record(self.db.users.find_one({'_id': self._oid(user_id)}, NO_PASSWORD))

    @translate_errors
    def find_by_username(self, username, with_password=False):
        return self._record(self.db.users.find_one({'username': username}, self._projection(with_password)))

    @translate_errors
    def find_by_email(self, email, with_password=False):
        return self._record(self.db.users.find_one({'email': email}, self._projection(with_password)))

    @translate_errors
    def find_all(self):
        return self._records(self.db.users.find({}, NO_PASSWORD).sort('username', ASCENDING))

    def _check_unique(self, username, email, exclude_oid=None):
        extra = {'_id': {'$ne': exclude_oid}} if exclude_oid is not None else {}
        if self.db.users.count_documents(dict(extra, username=username), limit=1):
            raise ConflictError('Username already taken')
        if self.db.users.count_documents(dict(extra, email=email), limit=1):
            raise ConflictError('Email already registered')

    @translate_errors
    def create(self, username, email, password_hash):
        self._check_unique(username, email)
        now = _now()
        result = self.db.users.insert_one({
            'username': username,
            'email': email,
            'password': password_hash,
            'created_at': now,
            'updated_at': now,
        })
        return self.find_by_id(result.inserted_id)

    @translate_errors
    def update(self, user_id, username, email):
        oid = self._oid(user_id)
        self._check_unique(username, email, exclude_oid=oid)
        result = self.db.users.update_one(
            {'_id': oid},
            {'$set': {'username': username, 'email': email, 'updated_at': _now()}},
        )
        return WriteResult(str(oid), result.matched_count)

    @translate_errors
    def change_password(self, user_id, password_hash):
        oid = self._oid(user_id)
        result = self.db.users.update_one(
            {'_id': oid},
            {'$set': {'password': password_hash, 'updated_at': _now()}},
        )
        return WriteResult(str(oid), result.matched_count)


class DocumentBoardStore(DocumentStore, BoardStore):

    @translate_errors
    def find_by_id(self, board_id):
        return self._record(self.db.boards.find_one({'_id': self._oid(board_id)}, NO_MEMBERS))

    @translate_errors
    def find_by_user(self, user_id):
        oid = self._oid(user_id)
        cursor = self.db.boards.find(
            {'$or': [{'owner_id': oid}, {'members.user_id': oid}]},
            NO_MEMBERS,
        ).sort([('is_starred', DESCENDING), ('created_at', DESCENDING), ('_id', DESCENDING)])
        return self._records(cursor)

    @translate_errors
    def create(self, title, owner_id, description=None, background=None):
        now = _now()
        result = self.db.boards.insert_one({
            'title': title,
            'description': description,
            'owner_id': self._oid(owner_id),
            'background': background or DEFAULT_BACKGROUND,
            'is_starred': False,
            'members': [],
            'created_at': now,
            'updated_at': now,
        })
        return self.find_by_id(result.inserted_id)

    @translate_errors
    def update(self, board_id, title, description=None, background=None, is_starred=False):
        oid = self._oid(board_id)
        result = self.db.boards.update_one(
            {'_id': oid},
            {'$set': {
                'title': title,
                'description': description,
                'background': background or DEFAULT_BACKGROUND,
                'is_starred': bool(is_starred),
                'updated_at': _now(),
            }},
        )
        return WriteResult(str(oid), result.matched_count)

    @translate_errors
    def delete(self, board_id):
        oid = self._oid(board_id)
        with self._unit_of_work() as session:
            list_oids = [doc['_id'] for doc in self.db.lists.find({'board_id': oid}, {'_id': 1}, **_session(session))]
            result = self.db.boards.delete_one({'_id': oid}, **_session(session))
            if list_oids:
                self.db.lists.delete_many({'_id': {'$in': list_oids}}, **_session(session))
                self.db.cards.delete_many({'list_id': {'$in': list_oids}}, **_session(session))
        return WriteResult(str(oid), result.deleted_count)

    @translate_errors
    def toggle_star(self, board_id, is_starred):
        oid = self._oid(board_id)
        result = self.db.boards.update_one(
            {'_id': oid},
            {'$set': {'is_starred': bool(is_starred), 'updated_at': _now()}},
        )
        return WriteResult(str(oid), result.matched_count)

    def _memberships(self, board_oid):
        board = self.db.boards.find_one({'_id': board_oid}, {'members': 1})
        if board is None:
            return []
        return board.get('members') or []

    @translate_errors
    def get_members(self, board_id):
        memberships = self._memberships(self._oid(board_id))
        if not memberships:
            return []

        users = {
            user['_id']: user
            for user in self.db.users.find(
                {'_id': {'$in': [membership['user_id'] for membership in memberships]}},
                {'username': 1, 'email': 1},
            )
        }
        return [
            {
                'id': self.ids.normalize_id(membership['user_id']),
                'username': users[membership['user_id']]['username'],
                'email': users[membership['user_id']]['email'],
                'role': membership['role'],
            }
            for membership in memberships
            if membership['user_id'] in users
        ]

    @translate_errors
    def find_membership(self, board_id, user_id):
        board_oid = self._oid(board_id)
        user_oid = self._oid(user_id)
        for membership in self._memberships(board_oid):
            if membership['user_id'] == user_oid:
                return {
                    'board_id': str(board_oid),
                    'user_id': str(user_oid),
                    'role': membership['role'],
                }
        return None

    @translate_errors
    def add_member(self, board_id, user_id, role='member'):
        board_oid = self._oid(board_id)
        user_oid = self._oid(user_id)
        if self.find_membership(board_oid, user_oid) is not None:
            raise ConflictError('User is already a member of this board')
        result = self.db.boards.update_one(
            {'_id': board_oid, 'members.user_id': {'$ne': user_oid}},
            {'$push': {'members': {'user_id': user_oid, 'role': role, 'added_at': _now()}}},
        )
        if result.matched_count == 0:
            if self.db.boards.count_documents({'_id': board_oid}, limit=1) == 0:
                raise NotFoundError('Board not found')
            raise ConflictError('User is already a member of this board')
        return self.find_membership(board_oid, user_oid)

    @translate_errors
    def update_member_role(self, board_id, user_id, role):
        user_oid = self._oid(user_id)
        result = self.db.boards.update_one(
            {'_id': self._oid(board_id), 'members.user_id': user_oid},
            {'$set': {'members.$.role': role}},
        )
        return WriteResult(str(user_oid), result.matched_count)

    @translate_errors
    def remove_member(self, board_id, user_id):
        user_oid = self._oid(user_id)
        result = self.db.boards.update_one(
            {'_id': self._oid(board_id), 'members.user_id': user_oid},
            {'$pull': {'members': {'user_id': user_oid}}},
        )
        return WriteResult(str(user_oid), result.matched_count)


class DocumentListStore(DocumentStore, ListStore):

    @translate_errors
    def find_by_id(self, list_id):
        return self._record(self.db.lists.find_one({'_id': self._oid(list_id)}))

    @translate_errors
    def find_by_board(self, board_id):
        cursor = self.db.lists.find({'board_id': self._oid(board_id)}).sort(
            [('position', ASCENDING), ('_id', ASCENDING)]
        )
        return self._records(cursor)

    @translate_errors
    def create(self, board_id, title):
        board_oid = self._oid(board_id)
        with self._parent_lock(self.db.boards, board_oid, 'Board not found'):
            position = reindex.next_position(self._siblings(self.db.lists, {'board_id': board_oid}))
            now = _now()
            result = self.db.lists.insert_one({
                'title': title,
                'board_id': board_oid,
                'position': position,
                'created_at': now,
                'updated_at': now,
            })
        return self.find_by_id(result.inserted_id)

    @translate_errors
    def update(self, list_id, title):
        oid = self._oid(list_id)
        result = self.db.lists.update_one({'_id': oid}, {'$set': {'title': title, 'updated_at': _now()}})
        return WriteResult(str(oid), result.matched_count)

    @translate_errors
    def delete(self, list_id):
        oid = self._oid(list_id)
        current = self.db.lists.find_one({'_id': oid}, {'board_id': 1})
        if current is None:
            return WriteResult(str(oid), 0)

        with self._parent_lock(self.db.boards, current['board_id'], 'Board not found'):
            task_list = self.db.lists.find_one({'_id': oid}, {'position': 1, 'board_id': 1})
            if task_list is None:
                return WriteResult(str(oid), 0)

            survivors = [
                sibling for sibling in self._siblings(self.db.lists, {'board_id': task_list['board_id']})
                if sibling['id'] != str(oid)
            ]
            updates = reindex.repack_after_delete(survivors, task_list['position'])

            with self._unit_of_work() as session:
                def remove():
                    # cards first, so a failure leaves the list in place
                    self.db.cards.delete_many({'list_id': oid}, **_session(session))
                    self.db.lists.delete_one({'_id': oid}, **_session(session))

                self._write_batch(
                    self.db.lists,
                    _position_changes(updates),
                    _position_originals(survivors),
                    session=session,
                    finish=remove,
                )
        return WriteResult(str(oid), 1)

    @translate_errors
    def move(self, list_id, new_position):
        oid = self._oid(list_id)
        current = self.db.lists.find_one({'_id': oid}, {'board_id': 1})
        if current is None:
            raise NotFoundError('List not found')

        with self._parent_lock(self.db.boards, current['board_id'], 'Board not found'):
            task_list = self.db.lists.find_one({'_id': oid}, {'position': 1, 'board_id': 1})
            if task_list is None:
                raise NotFoundError('List not found')

            siblings = self._siblings(self.db.lists, {'board_id': task_list['board_id']})
            updates = reindex.move_within_parent(siblings, str(oid), task_list['position'], new_position)
            with self._unit_of_work() as session:
                self._write_batch(
                    self.db.lists,
                    _position_changes(updates),
                    _position_originals(siblings),
                    session=session,
                )
        return self.find_by_id(oid)


class DocumentCardStore(DocumentStore, CardStore):

    @translate_errors
    def find_by_id(self, card_id):
        return self._record(self.db.cards.find_one({'_id': self._oid(card_id)}, NO_COMMENTS))

    @translate_errors
    def find_by_list(self, list_id):
        cursor = self.db.cards.find({'list_id': self._oid(list_id)}, NO_COMMENTS).sort(
            [('position', ASCENDING), ('_id', ASCENDING)]
        )
        return self._records(cursor)

    @translate_errors
    def find_by_board(self, board_id):
        list_positions = {
            doc['_id']: (doc['position'], str(doc['_id']))
            for doc in self.db.lists.find({'board_id': self._oid(board_id)}, {'position': 1})
        }
        if not list_positions:
            return []

        cards = list(self.db.cards.find({'list_id': {'$in': list(list_positions)}}, NO_COMMENTS))
        cards.sort(key=lambda card: (list_positions[card['list_id']], card['position'], str(card['_id'])))
        return self._records(cards)

    @translate_errors
    def create(self, list_id, title, description=None, due_date=None, labels=None):
        list_oid = self._oid(list_id)
        with self._parent_lock(self.db.lists, list_oid, 'List not found'):
            position = reindex.next_position(self._siblings(self.db.cards, {'list_id': list_oid}))
            now = _now()
            result = self.db.cards.insert_one({
                'title': title,
                'description': description,
                'list_id': list_oid,
                'position': position,
                'due_date': due_date,
                'labels': list(labels or []),
                'comments': [],
                'created_at': now,
                'updated_at': now,
            })
        return self.find_by_id(result.inserted_id)

    @translate_errors
    def update(self, card_id, title, description=None, due_date=None, labels=None):
        oid = self._oid(card_id)
        result = self.db.cards.update_one(
            {'_id': oid},
            {'$set': {
                'title': title,
                'description': description,
                'due_date': due_date,
                'labels': list(labels or []),
                'updated_at': _now(),
            }},
        )
        return WriteResult(str(oid), result.matched_count)

    @translate_errors
    def delete(self, card_id):
        oid = self._oid(card_id)
        current = self.db.cards.find_one({'_id': oid}, {'list_id': 1})
        if current is None:
            return WriteResult(str(oid), 0)

        with self._parent_lock(self.db.lists, current['list_id'], 'List not found'):
            card = self.db.cards.find_one({'_id': oid}, {'list_id': 1, 'position': 1})
            if card is None:
                return WriteResult(str(oid), 0)
            if card['list_id'] != current['list_id']:
                raise ConflictError('Card was moved by another request, try again')

            survivors = [
                sibling for sibling in self._siblings(self.db.cards, {'list_id': card['list_id']})
                if sibling['id'] != str(oid)
            ]
            updates = reindex.repack_after_delete(survivors, card['position'])

            with self._unit_of_work() as session:
                self._write_batch(
                    self.db.cards,
                    _position_changes(updates),
                    _position_originals(survivors),
                    session=session,
                    finish=lambda: self.db.cards.delete_one({'_id': oid}, **_session(session)),
                )
        return WriteResult(str(oid), 1)

    @translate_errors
    def move_in_list(self, card_id, new_position):
        oid = self._oid(card_id)
        current = self.db.cards.find_one({'_id': oid}, {'list_id': 1})
        if current is None:
            raise NotFoundError('Card not found')

        with self._parent_lock(self.db.lists, current['list_id'], 'List not found'):
            card = self.db.cards.find_one({'_id': oid}, {'list_id': 1, 'position': 1})
            if card is None:
                raise NotFoundError('Card not found')
            if card['list_id'] != current['list_id']:
                raise ConflictError('Card was moved by another request, try again')

            siblings = self._siblings(self.db.cards, {'list_id': card['list_id']})
            updates = reindex.move_within_parent(siblings, str(oid), card['position'], new_position)
            with self._unit_of_work() as session:
                self._write_batch(
                    self.db.cards,
                    _position_changes(updates),
                    _position_originals(siblings),
                    session=session,
                )
        return self.find_by_id(oid)

    @translate_errors
    def move_to_list(self, card_id, list_id, position):
        oid = self._oid(card_id)
        target_oid = self._oid(list_id)

        current = self.db.cards.find_one({'_id': oid}, {'list_id': 1})
        if current is None:
            raise NotFoundError('Card not found')
        source_oid = current['list_id']
        if source_oid == target_oid:
            return self.move_in_list(oid, position)

        parents = {doc['_id']: doc for doc in self.db.lists.find({'_id': {'$in': [source_oid, target_oid]}})}
        if target_oid not in parents:
            raise NotFoundError('List not found')
        if source_oid not in parents:
            raise NotFoundError('Card not found')
        if parents[source_oid]['board_id'] != parents[target_oid]['board_id']:
            raise ValidationError('Cards can only be moved between lists of the same board')

        # both parents leased in id order
        first, second = sorted([source_oid, target_oid])
        with self._parent_lock(self.db.lists, first, 'List not found'):
            with self._parent_lock(self.db.lists, second, 'List not found'):
                card = self.db.cards.find_one({'_id': oid}, {'list_id': 1, 'position': 1})
                if card is None:
                    raise NotFoundError('Card not found')
                if card['list_id'] != source_oid:
                    raise ConflictError('Card was moved by another request, try again')

                source_siblings = self._siblings(self.db.cards, {'list_id': source_oid})
                target_siblings = self._siblings(self.db.cards, {'list_id': target_oid})
                move = reindex.move_across_parents(str(oid), source_siblings, target_siblings, position)

                changes = _position_changes(move.source_updates)
                changes.update(_position_changes(move.target_updates))
                changes[str(oid)] = {'list_id': target_oid, 'position': move.position}

                originals = _position_originals(source_siblings + target_siblings)
                originals[str(oid)] = {'list_id': source_oid, 'position': card['position']}

                with self._unit_of_work() as session:
                    self._write_batch(self.db.cards, changes, originals, session=session)
        return self.find_by_id(oid)

    def _usernames(self, user_oids):
        return {
            user['_id']: user['username']
            for user in self.db.users.find({'_id': {'$in': list(set(user_oids))}}, {'username': 1})
        }

    def _comment_record(self, card_oid, comment, usernames):
        return {
            'id': self.ids.normalize_id(comment['_id']),
            'card_id': self.ids.normalize_id(card_oid),
            'user_id': self.ids.normalize_id(comment['user_id']),
            'username': usernames.get(comment['user_id']),
            'content': comment['content'],
            'created_at': comment['created_at'],
        }

    @translate_errors
    def add_comment(self, card_id, user_id, content):
        card_oid = self._oid(card_id)
        user_oid = self._oid(user_id)
        now = _now()
        comment = {
            '_id': ObjectId(),
            'content': content,
            'user_id': user_oid,
            'created_at': now,
            'updated_at': now,
        }
        result = self.db.cards.update_one({'_id': card_oid}, {'$push': {'comments': comment}})
        if result.matched_count == 0:
            raise NotFoundError('Card not found')
        return self._comment_record(card_oid, comment, self._usernames([user_oid]))

    @translate_errors
    def get_comments(self, card_id):
        card_oid = self._oid(card_id)
        card = self.db.cards.find_one({'_id': card_oid}, {'comments': 1})
        comments = (card or {}).get('comments') or []
        usernames = self._usernames([comment['user_id'] for comment in comments])
        return [self._comment_record(card_oid, comment, usernames) for comment in comments]


def build_document_stores(client, database_name, use_transactions=False):
    """Wire the document stores to ``client[database_name]``; creates indexes"""
    db = client[database_name]
    ensure_indexes(db)
    ids = DocumentIdentifiers()
    options = {'use_transactions': use_transactions}
    return Stores(
        backend=ids.kind,
        ids=ids,
        users=DocumentUserStore(db, ids, **options),
        boards=DocumentBoardStore(db, ids, **options),
        lists=DocumentListStore(db, ids, **options),
        cards=DocumentCardStore(db, ids, **options),
    )
