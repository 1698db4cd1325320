# apps/board/stores/relational.py

"""
Relational entity stores (Django ORM)

Every position-mutating operation runs in one ``transaction.atomic()`` block
and locks the parent row first (board for lists, list for cards), so two
requests reordering the same sibling set are serialized by the database.
"""

import logging
from functools import wraps

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from apps.core.exceptions import (
    ConflictError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from apps.core.identifiers import RelationalIdentifiers
from apps.core.models import Board, BoardMember, Card, Comment, TaskList, User

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

USER_FIELDS = ('id', 'username', 'email', 'created_at', 'updated_at')
BOARD_FIELDS = ('id', 'title', 'description', 'owner_id', 'background', 'is_starred', 'created_at', 'updated_at')
LIST_FIELDS = ('id', 'title', 'board_id', 'position', 'created_at', 'updated_at')
CARD_FIELDS = (
    'id', 'title', 'description', 'list_id', 'position', 'due_date', 'labels', 'created_at', 'updated_at'
)
COMMENT_FIELDS = ('id', 'card_id', 'user_id', 'content', 'created_at')


def translate_errors(method):
    """Map database failures onto the error taxonomy at the store boundary"""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except IntegrityError as exc:
            logger.warning('Integrity error in %s: %s', method.__qualname__, exc)
            raise ConflictError() from exc
        except DatabaseError as exc:
            logger.exception('Database error in %s, transaction rolled back', method.__qualname__)
            raise InfrastructureError() from exc

    return wrapper


def _lock(model, pk):
    """SELECT ... FOR UPDATE on one parent row; False when it does not exist"""
    return bool(list(model.objects.select_for_update().filter(pk=pk).values_list('pk', flat=True)))


def _siblings(queryset):
    return list(queryset.order_by('position', 'id').values('id', 'position'))


def _apply_positions(model, updates, now):
    for pk, position in updates.items():
        model.objects.filter(pk=pk).update(position=position, updated_at=now)


class RelationalUserStore(UserStore):

    def __init__(self, ids):
        self.ids = ids

    def _fields(self, with_password):
        return USER_FIELDS + ('password',) if with_password else USER_FIELDS

    @translate_errors
    def find_by_id(self, user_id):
        return User.objects.filter(pk=self.ids.normalize_id(user_id)).values(*USER_FIELDS).first()

    @translate_errors
    def find_by_username(self, username, with_password=False):
        return User.objects.filter(username=username).values(*self._fields(with_password)).first()

    @translate_errors
    def find_by_email(self, email, with_password=False):
        return User.objects.filter(email=email).values(*self._fields(with_password)).first()

    @translate_errors
    def find_all(self):
        return list(User.objects.order_by('username').values(*USER_FIELDS))

    def _check_unique(self, username, email, exclude_id=None):
        users = User.objects.all()
        if exclude_id is not None:
            users = users.exclude(pk=exclude_id)
        if users.filter(username=username).exists():
            raise ConflictError('Username already taken')
        if users.filter(email=email).exists():
            raise ConflictError('Email already registered')

    @translate_errors
    def create(self, username, email, password_hash):
        with transaction.atomic():
            self._check_unique(username, email)
            user = User.objects.create(username=username, email=email, password=password_hash)
        return self.find_by_id(user.pk)

    @translate_errors
    def update(self, user_id, username, email):
        user_id = self.ids.normalize_id(user_id)
        with transaction.atomic():
            self._check_unique(username, email, exclude_id=user_id)
            changes = User.objects.filter(pk=user_id).update(
                username=username, email=email, updated_at=timezone.now()
            )
        return WriteResult(user_id, changes)

    @translate_errors
    def change_password(self, user_id, password_hash):
        user_id = self.ids.normalize_id(user_id)
        changes = User.objects.filter(pk=user_id).update(password=password_hash, updated_at=timezone.now())
        return WriteResult(user_id, changes)


class RelationalBoardStore(BoardStore):

    def __init__(self, ids):
        self.ids = ids

    @translate_errors
    def find_by_id(self, board_id):
        return Board.objects.filter(pk=self.ids.normalize_id(board_id)).values(*BOARD_FIELDS).first()

    @translate_errors
    def find_by_user(self, user_id):
        user_id = self.ids.normalize_id(user_id)
        boards = (
            Board.objects
            .filter(Q(owner_id=user_id) | Q(memberships__user_id=user_id))
            .distinct()
            .order_by('-is_starred', '-created_at', '-id')
        )
        return list(boards.values(*BOARD_FIELDS))

    @translate_errors
    def create(self, title, owner_id, description=None, background=None):
        board = Board.objects.create(
            title=title,
            description=description,
            owner_id=self.ids.normalize_id(owner_id),
            background=background or DEFAULT_BACKGROUND,
        )
        return self.find_by_id(board.pk)

    @translate_errors
    def update(self, board_id, title, description=None, background=None, is_starred=False):
        board_id = self.ids.normalize_id(board_id)
        changes = Board.objects.filter(pk=board_id).update(
            title=title,
            description=description,
            background=background or DEFAULT_BACKGROUND,
            is_starred=bool(is_starred),
            updated_at=timezone.now(),
        )
        return WriteResult(board_id, changes)

    @translate_errors
    def delete(self, board_id):
        board_id = self.ids.normalize_id(board_id)
        with transaction.atomic():
            _, per_model = Board.objects.filter(pk=board_id).delete()
        return WriteResult(board_id, per_model.get(Board._meta.label, 0))

    @translate_errors
    def toggle_star(self, board_id, is_starred):
        board_id = self.ids.normalize_id(board_id)
        changes = Board.objects.filter(pk=board_id).update(is_starred=bool(is_starred), updated_at=timezone.now())
        return WriteResult(board_id, changes)

    @translate_errors
    def get_members(self, board_id):
        memberships = (
            BoardMember.objects
            .filter(board_id=self.ids.normalize_id(board_id))
            .order_by('created_at', 'id')
            .values('user_id', 'user__username', 'user__email', 'role')
        )
        return [
            {
                'id': row['user_id'],
                'username': row['user__username'],
                'email': row['user__email'],
                'role': row['role'],
            }
            for row in memberships
        ]

    @translate_errors
    def find_membership(self, board_id, user_id):
        return BoardMember.objects.filter(
            board_id=self.ids.normalize_id(board_id),
            user_id=self.ids.normalize_id(user_id),
        ).values('board_id', 'user_id', 'role').first()

    @translate_errors
    def add_member(self, board_id, user_id, role='member'):
        board_id = self.ids.normalize_id(board_id)
        user_id = self.ids.normalize_id(user_id)
        with transaction.atomic():
            if BoardMember.objects.filter(board_id=board_id, user_id=user_id).exists():
                raise ConflictError('User is already a member of this board')
            BoardMember.objects.create(board_id=board_id, user_id=user_id, role=role)
        return self.find_membership(board_id, user_id)

    @translate_errors
    def update_member_role(self, board_id, user_id, role):
        user_id = self.ids.normalize_id(user_id)
        changes = BoardMember.objects.filter(
            board_id=self.ids.normalize_id(board_id), user_id=user_id
        ).update(role=role)
        return WriteResult(user_id, changes)

    @translate_errors
    def remove_member(self, board_id, user_id):
        user_id = self.ids.normalize_id(user_id)
        changes, _ = BoardMember.objects.filter(
            board_id=self.ids.normalize_id(board_id), user_id=user_id
        ).delete()
        return WriteResult(user_id, changes)


class RelationalListStore(ListStore):

    def __init__(self, ids):
        self.ids = ids

    @translate_errors
    def find_by_id(self, list_id):
        return TaskList.objects.filter(pk=self.ids.normalize_id(list_id)).values(*LIST_FIELDS).first()

    @translate_errors
    def find_by_board(self, board_id):
        task_lists = TaskList.objects.filter(board_id=self.ids.normalize_id(board_id)).order_by('position', 'id')
        return list(task_lists.values(*LIST_FIELDS))

    @translate_errors
    def create(self, board_id, title):
        board_id = self.ids.normalize_id(board_id)
        with transaction.atomic():
            if not _lock(Board, board_id):
                raise NotFoundError('Board not found')
            position = reindex.next_position(_siblings(TaskList.objects.filter(board_id=board_id)))
            task_list = TaskList.objects.create(board_id=board_id, title=title, position=position)
        return self.find_by_id(task_list.pk)

    @translate_errors
    def update(self, list_id, title):
        list_id = self.ids.normalize_id(list_id)
        changes = TaskList.objects.filter(pk=list_id).update(title=title, updated_at=timezone.now())
        return WriteResult(list_id, changes)

    def _locked_list(self, list_id):
        """Lock the owning board, then read the list under that lock"""
        current = TaskList.objects.filter(pk=list_id).values('board_id').first()
        if current is None:
            return None
        _lock(Board, current['board_id'])
        return TaskList.objects.filter(pk=list_id).values('id', 'board_id', 'position').first()

    @translate_errors
    def delete(self, list_id):
        list_id = self.ids.normalize_id(list_id)
        with transaction.atomic():
            task_list = self._locked_list(list_id)
            if task_list is None:
                return WriteResult(list_id, 0)

            TaskList.objects.filter(pk=list_id).delete()
            survivors = _siblings(TaskList.objects.filter(board_id=task_list['board_id']))
            updates = reindex.repack_after_delete(survivors, task_list['position'])
            _apply_positions(TaskList, updates, timezone.now())
        return WriteResult(list_id, 1)

    @translate_errors
    def move(self, list_id, new_position):
        list_id = self.ids.normalize_id(list_id)
        with transaction.atomic():
            task_list = self._locked_list(list_id)
            if task_list is None:
                raise NotFoundError('List not found')

            siblings = _siblings(TaskList.objects.filter(board_id=task_list['board_id']))
            updates = reindex.move_within_parent(siblings, list_id, task_list['position'], new_position)
            _apply_positions(TaskList, updates, timezone.now())
        return self.find_by_id(list_id)


class RelationalCardStore(CardStore):

    def __init__(self, ids):
        self.ids = ids

    @translate_errors
    def find_by_id(self, card_id):
        return Card.objects.filter(pk=self.ids.normalize_id(card_id)).values(*CARD_FIELDS).first()

    @translate_errors
    def find_by_list(self, list_id):
        cards = Card.objects.filter(list_id=self.ids.normalize_id(list_id)).order_by('position', 'id')
        return list(cards.values(*CARD_FIELDS))

    @translate_errors
    def find_by_board(self, board_id):
        cards = (
            Card.objects
            .filter(list__board_id=self.ids.normalize_id(board_id))
            .order_by('list__position', 'list_id', 'position', 'id')
        )
        return list(cards.values(*CARD_FIELDS))

    @translate_errors
    def create(self, list_id, title, description=None, due_date=None, labels=None):
        list_id = self.ids.normalize_id(list_id)
        with transaction.atomic():
            if not _lock(TaskList, list_id):
                raise NotFoundError('List not found')
            position = reindex.next_position(_siblings(Card.objects.filter(list_id=list_id)))
            card = Card.objects.create(
                list_id=list_id,
                title=title,
                description=description,
                position=position,
                due_date=due_date,
                labels=list(labels or []),
            )
        return self.find_by_id(card.pk)

    @translate_errors
    def update(self, card_id, title, description=None, due_date=None, labels=None):
        card_id = self.ids.normalize_id(card_id)
        changes = Card.objects.filter(pk=card_id).update(
            title=title,
            description=description,
            due_date=due_date,
            labels=list(labels or []),
            updated_at=timezone.now(),
        )
        return WriteResult(card_id, changes)

    def _locked_card(self, card_id):
        """Lock the card's list, then read the card under that lock"""
        current = Card.objects.filter(pk=card_id).values('list_id').first()
        if current is None:
            return None
        _lock(TaskList, current['list_id'])
        card = Card.objects.filter(pk=card_id).values('id', 'list_id', 'position').first()
        if card is not None and card['list_id'] != current['list_id']:
            raise ConflictError('Card was moved by another request, try again')
        return card

    @translate_errors
    def delete(self, card_id):
        card_id = self.ids.normalize_id(card_id)
        with transaction.atomic():
            card = self._locked_card(card_id)
            if card is None:
                return WriteResult(card_id, 0)

            Card.objects.filter(pk=card_id).delete()
            survivors = _siblings(Card.objects.filter(list_id=card['list_id']))
            updates = reindex.repack_after_delete(survivors, card['position'])
            _apply_positions(Card, updates, timezone.now())
        return WriteResult(card_id, 1)

    @translate_errors
    def move_in_list(self, card_id, new_position):
        card_id = self.ids.normalize_id(card_id)
        with transaction.atomic():
            card = self._locked_card(card_id)
            if card is None:
                raise NotFoundError('Card not found')

            siblings = _siblings(Card.objects.filter(list_id=card['list_id']))
            updates = reindex.move_within_parent(siblings, card_id, card['position'], new_position)
            _apply_positions(Card, updates, timezone.now())
        return self.find_by_id(card_id)

    @translate_errors
    def move_to_list(self, card_id, list_id, position):
        card_id = self.ids.normalize_id(card_id)
        target_id = self.ids.normalize_id(list_id)

        current = Card.objects.filter(pk=card_id).values('list_id').first()
        if current is None:
            raise NotFoundError('Card not found')
        source_id = current['list_id']
        if source_id == target_id:
            return self.move_in_list(card_id, position)

        with transaction.atomic():
            # both parents locked in primary key order
            locked = {
                row['id']: row
                for row in TaskList.objects.select_for_update()
                .filter(pk__in=[source_id, target_id])
                .order_by('pk')
                .values('id', 'board_id')
            }
            if target_id not in locked:
                raise NotFoundError('List not found')
            if source_id not in locked:
                raise NotFoundError('Card not found')
            if locked[source_id]['board_id'] != locked[target_id]['board_id']:
                raise ValidationError('Cards can only be moved between lists of the same board')

            card = Card.objects.filter(pk=card_id).values('id', 'list_id', 'position').first()
            if card is None:
                raise NotFoundError('Card not found')
            if card['list_id'] != source_id:
                raise ConflictError('Card was moved by another request, try again')

            move = reindex.move_across_parents(
                card_id,
                _siblings(Card.objects.filter(list_id=source_id)),
                _siblings(Card.objects.filter(list_id=target_id)),
                position,
            )
            now = timezone.now()
            _apply_positions(Card, move.source_updates, now)
            _apply_positions(Card, move.target_updates, now)
            Card.objects.filter(pk=card_id).update(list_id=target_id, position=move.position, updated_at=now)
        return self.find_by_id(card_id)

    @translate_errors
    def add_comment(self, card_id, user_id, content):
        card_id = self.ids.normalize_id(card_id)
        if not Card.objects.filter(pk=card_id).exists():
            raise NotFoundError('Card not found')
        comment = Comment.objects.create(card_id=card_id, user_id=self.ids.normalize_id(user_id), content=content)
        return Comment.objects.filter(pk=comment.pk).values(*COMMENT_FIELDS, username=F('user__username')).first()

    @translate_errors
    def get_comments(self, card_id):
        comments = Comment.objects.filter(card_id=self.ids.normalize_id(card_id)).order_by('created_at', 'id')
        return list(comments.values(*COMMENT_FIELDS, username=F('user__username')))


def build_relational_stores():
    ids = RelationalIdentifiers()
    return Stores(
        backend=ids.kind,
        ids=ids,
        users=RelationalUserStore(ids),
        boards=RelationalBoardStore(ids),
        lists=RelationalListStore(ids),
        cards=RelationalCardStore(ids),
    )
