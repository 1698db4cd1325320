# apps/core/permissions.py

from functools import wraps

from .exceptions import AccessDeniedError, AuthenticationError, NotFoundError

EDITOR_ROLES = ('owner', 'admin', 'member')
SAFE_METHODS = ('GET', 'HEAD', 'OPTIONS')


class BoardPermissions:
    """
    Board-level access control

    Roles come from two places: the board's owner id (``owner``) and the
    membership records (``admin``, ``member``, ``viewer``). The owner never
    has a membership record.
    """

    @staticmethod
    def get_role(stores, board, user_id):
        """Role of ``user_id`` on an already loaded ``board``, or None"""
        if board is None or user_id is None:
            return None

        if stores.ids.ids_equal(board['owner_id'], user_id):
            return 'owner'

        membership = stores.boards.find_membership(board['id'], user_id)
        return membership['role'] if membership else None

    @staticmethod
    def check_access(stores, board_id, user_id):
        """Owner or member of the board"""
        board = stores.boards.find_by_id(board_id)
        return BoardPermissions.get_role(stores, board, user_id) is not None

    @staticmethod
    def check_ownership(stores, board_id, user_id):
        """Only the owner; membership roles never grant ownership"""
        board = stores.boards.find_by_id(board_id)
        if board is None:
            return False
        return stores.ids.ids_equal(board['owner_id'], user_id)

    @staticmethod
    def can_edit(role):
        """Viewers may read a board but not change its lists and cards"""
        return role in EDITOR_ROLES

    @staticmethod
    def authorize(request, board, write=False, owner_only=False):
        """
        Check the authenticated user against ``board`` and remember the
        outcome on the request (``request.board``, ``request.board_role``).
        """
        if board is None:
            raise NotFoundError('Board not found')

        role = BoardPermissions.get_role(request.stores, board, request.auth_user['id'])
        if role is None:
            raise AccessDeniedError('Access denied')
        if owner_only and role != 'owner':
            raise AccessDeniedError('Only the board owner can do this')
        if write and not BoardPermissions.can_edit(role):
            raise AccessDeniedError('Viewers cannot modify this board')

        request.board = board
        request.board_role = role
        return board


# Decorators for views

def token_required(view_func):
    """
    Requires a valid token (set by TokenAuthenticationMiddleware).
    No token is a 401, a rejected token is a 403.
    """

    @wraps(view_func)
    def wrapped_view(request, *args, **kwargs):
        if getattr(request, 'auth_user', None) is None:
            error = getattr(request, 'auth_error', None)
            if error is not None:
                raise error
            raise AuthenticationError()
        return view_func(request, *args, **kwargs)

    return wrapped_view


def require_board_access(view_func=None, *, owner_only=False):
    """
    Checks access to the board named by the ``board_id`` view argument.
    Unsafe methods additionally require an editing role.
    """

    def decorator(func):
        @wraps(func)
        def wrapped_view(request, board_id, *args, **kwargs):
            stores = request.stores
            board_id = stores.ids.normalize_id(board_id)
            BoardPermissions.authorize(
                request,
                stores.boards.find_by_id(board_id),
                write=request.method not in SAFE_METHODS,
                owner_only=owner_only,
            )
            return func(request, board_id, *args, **kwargs)

        return wrapped_view

    if view_func is not None:
        return decorator(view_func)
    return decorator


def require_board_ownership(view_func):
    """Only the board owner gets through"""
    return require_board_access(view_func, owner_only=True)
