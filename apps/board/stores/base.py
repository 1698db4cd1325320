# apps/board/stores/base.py

"""
Entity store contract

Both backends implement these classes and hand out plain dict records with
the same keys. Ids inside records are always in the canonical form of the
backend's IdentifierAdapter.

Record shapes:
    user     id, username, email, created_at, updated_at (+ password on request)
    board    id, title, description, owner_id, background, is_starred,
             created_at, updated_at
    member   id (user id), username, email, role
    list     id, title, board_id, position, created_at, updated_at
    card     id, title, description, list_id, position, due_date, labels,
             created_at, updated_at
    comment  id, card_id, user_id, username, content, created_at
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

from apps.core.identifiers import IdentifierAdapter

MEMBER_ROLES = ('admin', 'member', 'viewer')
DEFAULT_BACKGROUND = '#0079bf'


@dataclass(frozen=True)
class WriteResult:
    """Outcome of an update/delete; ``changes == 0`` means nothing matched"""

    id: Any
    changes: int

    def __bool__(self):
        return self.changes > 0


class UserStore(ABC):

    @abstractmethod
    def find_by_id(self, user_id) -> Optional[dict]:
        """Public user record (never includes the password hash)"""

    @abstractmethod
    def find_by_username(self, username, with_password=False) -> Optional[dict]:
        pass

    @abstractmethod
    def find_by_email(self, email, with_password=False) -> Optional[dict]:
        pass

    @abstractmethod
    def find_all(self) -> List[dict]:
        pass

    @abstractmethod
    def create(self, username, email, password_hash) -> dict:
        """Raises ConflictError when the username or email is taken"""

    @abstractmethod
    def update(self, user_id, username, email) -> WriteResult:
        pass

    @abstractmethod
    def change_password(self, user_id, password_hash) -> WriteResult:
        pass


class BoardStore(ABC):

    @abstractmethod
    def find_by_id(self, board_id) -> Optional[dict]:
        pass

    @abstractmethod
    def find_by_user(self, user_id) -> List[dict]:
        """Boards owned by or shared with the user, starred first, newest first"""

    @abstractmethod
    def create(self, title, owner_id, description=None, background=None) -> dict:
        pass

    @abstractmethod
    def update(self, board_id, title, description=None, background=None, is_starred=False) -> WriteResult:
        pass

    @abstractmethod
    def delete(self, board_id) -> WriteResult:
        """Cascades to lists, cards, comments and memberships"""

    @abstractmethod
    def toggle_star(self, board_id, is_starred) -> WriteResult:
        pass

    @abstractmethod
    def get_members(self, board_id) -> List[dict]:
        pass

    @abstractmethod
    def find_membership(self, board_id, user_id) -> Optional[dict]:
        """``{'board_id', 'user_id', 'role'}`` or None"""

    @abstractmethod
    def add_member(self, board_id, user_id, role='member') -> dict:
        """Raises ConflictError when the user already is a member"""

    @abstractmethod
    def update_member_role(self, board_id, user_id, role) -> WriteResult:
        pass

    @abstractmethod
    def remove_member(self, board_id, user_id) -> WriteResult:
        pass


class ListStore(ABC):

    @abstractmethod
    def find_by_id(self, list_id) -> Optional[dict]:
        pass

    @abstractmethod
    def find_by_board(self, board_id) -> List[dict]:
        """Lists of a board ordered by position"""

    @abstractmethod
    def create(self, board_id, title) -> dict:
        """Appends the list at the next dense position"""

    @abstractmethod
    def update(self, list_id, title) -> WriteResult:
        pass

    @abstractmethod
    def delete(self, list_id) -> WriteResult:
        """Deletes the list with its cards and repacks the board's lists"""

    @abstractmethod
    def move(self, list_id, new_position) -> dict:
        """Moves the list inside its board; returns the updated list"""


class CardStore(ABC):

    @abstractmethod
    def find_by_id(self, card_id) -> Optional[dict]:
        pass

    @abstractmethod
    def find_by_list(self, list_id) -> List[dict]:
        """Cards of a list ordered by position"""

    @abstractmethod
    def find_by_board(self, board_id) -> List[dict]:
        """Cards of a board ordered by list position, then card position"""

    @abstractmethod
    def create(self, list_id, title, description=None, due_date=None, labels=None) -> dict:
        """Appends the card at the next dense position"""

    @abstractmethod
    def update(self, card_id, title, description=None, due_date=None, labels=None) -> WriteResult:
        pass

    @abstractmethod
    def delete(self, card_id) -> WriteResult:
        """Deletes the card and repacks its list"""

    @abstractmethod
    def move_in_list(self, card_id, new_position) -> dict:
        pass

    @abstractmethod
    def move_to_list(self, card_id, list_id, position) -> dict:
        pass

    @abstractmethod
    def add_comment(self, card_id, user_id, content) -> dict:
        pass

    @abstractmethod
    def get_comments(self, card_id) -> List[dict]:
        """Comments oldest first, with the author's username"""


@dataclass(frozen=True)
class Stores:
    """The store implementations of one backend, handed to business logic"""

    backend: str
    ids: IdentifierAdapter
    users: UserStore
    boards: BoardStore
    lists: ListStore
    cards: CardStore
