# apps/board/views.py

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from apps.core.exceptions import AccessDeniedError, NotFoundError, ValidationError
from apps.core.permissions import (
    SAFE_METHODS,
    BoardPermissions,
    require_board_access,
    require_board_ownership,
    token_required,
)
from apps.core.utils import (
    parse_due_date,
    parse_json_body,
    parse_labels,
    parse_position,
    require_text,
)

from .stores import MEMBER_ROLES


def _is_write(request):
    return request.method not in SAFE_METHODS


def _list_with_board(request, list_id):
    """Load a list and authorize the user on its board"""
    stores = request.stores
    task_list = stores.lists.find_by_id(stores.ids.normalize_id(list_id))
    if task_list is None:
        raise NotFoundError('List not found')
    BoardPermissions.authorize(request, stores.boards.find_by_id(task_list['board_id']), write=_is_write(request))
    return task_list


def _card_with_board(request, card_id):
    """Load a card and authorize the user on the board owning its list"""
    stores = request.stores
    card = stores.cards.find_by_id(stores.ids.normalize_id(card_id))
    if card is None:
        raise NotFoundError('Card not found')
    task_list = stores.lists.find_by_id(card['list_id'])
    if task_list is None:
        raise NotFoundError('Card not found')
    BoardPermissions.authorize(request, stores.boards.find_by_id(task_list['board_id']), write=_is_write(request))
    return card


def _lists_with_cards(stores, board_id):
    """Lists of a board in order, each with its cards in order"""
    lists = stores.lists.find_by_board(board_id)
    cards_by_list = {task_list['id']: [] for task_list in lists}
    for card in stores.cards.find_by_board(board_id):
        cards_by_list.setdefault(card['list_id'], []).append(card)
    return [dict(task_list, cards=cards_by_list[task_list['id']]) for task_list in lists]


# === BOARDS ===

@csrf_exempt
@require_http_methods(["GET", "POST"])
@token_required
def boards_view(request):
    """
    GET: boards owned by or shared with the user, starred first
    POST: create a board owned by the user
    """
    stores = request.stores

    if request.method == 'GET':
        return JsonResponse({'boards': stores.boards.find_by_user(request.auth_user['id'])})

    data = parse_json_body(request)
    title = require_text(data, 'title', 'Board title is required')
    board = stores.boards.create(
        title,
        request.auth_user['id'],
        description=data.get('description'),
        background=data.get('background'),
    )
    return JsonResponse({'message': 'Board created successfully', 'board': board}, status=201)


@csrf_exempt
@require_http_methods(["GET", "PUT", "DELETE"])
@token_required
@require_board_access
def board_detail_view(request, board_id):
    """
    Board with its lists, their cards and the members
    Only the owner may delete the board
    """
    stores = request.stores
    board = request.board  # set by require_board_access

    if request.method == 'GET':
        detail = dict(
            board,
            lists=_lists_with_cards(stores, board_id),
            members=stores.boards.get_members(board_id),
        )
        return JsonResponse({'board': detail})

    if request.method == 'DELETE':
        if request.board_role != 'owner':
            raise AccessDeniedError('Only the board owner can do this')
        if not stores.boards.delete(board_id):
            raise NotFoundError('Board not found')
        return JsonResponse({'message': 'Board deleted successfully', 'boardId': board_id})

    data = parse_json_body(request)
    title = require_text(data, 'title', 'Board title is required')
    result = stores.boards.update(
        board_id,
        title,
        description=data.get('description', board['description']),
        background=data.get('background', board['background']),
        is_starred=data.get('is_starred', board['is_starred']),
    )
    if not result:
        raise NotFoundError('Board not found or no changes made')
    return JsonResponse({'message': 'Board updated successfully', 'board': stores.boards.find_by_id(board_id)})


@csrf_exempt
@require_http_methods(["PATCH"])
@token_required
@require_board_access
def board_star_view(request, board_id):
    data = parse_json_body(request)
    is_starred = data.get('is_starred')
    if not isinstance(is_starred, bool):
        raise ValidationError('Star status must be boolean')

    if not request.stores.boards.toggle_star(board_id, is_starred):
        raise NotFoundError('Board not found or no changes made')
    return JsonResponse({
        'message': f"Board {'starred' if is_starred else 'unstarred'} successfully",
        'boardId': board_id,
        'is_starred': is_starred,
    })


def _validate_role(role, default=None):
    role = role or default
    if role not in MEMBER_ROLES:
        raise ValidationError('Valid role is required (admin, member, or viewer)')
    return role


def _member_target(request, board_id, raw_user_id):
    """Normalized id of a membership target; the owner is never one"""
    stores = request.stores
    user_id = stores.ids.normalize_id(raw_user_id)
    if stores.ids.ids_equal(request.board['owner_id'], user_id):
        raise ValidationError('The board owner cannot be changed through membership')
    return user_id


@csrf_exempt
@require_http_methods(["POST"])
@token_required
@require_board_ownership
def board_members_view(request, board_id):
    stores = request.stores
    data = parse_json_body(request)
    if not data.get('userId'):
        raise ValidationError('User ID is required')

    role = _validate_role(data.get('role'), default='member')
    user_id = _member_target(request, board_id, data['userId'])
    user = stores.users.find_by_id(user_id)
    if user is None:
        raise NotFoundError('User not found')

    stores.boards.add_member(board_id, user_id, role)
    return JsonResponse({
        'message': 'Member added successfully',
        'member': {'id': user['id'], 'username': user['username'], 'email': user['email'], 'role': role},
    }, status=201)


@csrf_exempt
@require_http_methods(["PUT", "DELETE"])
@token_required
@require_board_ownership
def board_member_detail_view(request, board_id, user_id):
    stores = request.stores
    user_id = _member_target(request, board_id, user_id)

    if request.method == 'DELETE':
        if not stores.boards.remove_member(board_id, user_id):
            raise NotFoundError('Member not found on this board')
        return JsonResponse({'message': 'Member removed successfully', 'boardId': board_id, 'userId': user_id})

    role = _validate_role(parse_json_body(request).get('role'))
    if not stores.boards.update_member_role(board_id, user_id, role):
        raise NotFoundError('Member not found on this board')
    return JsonResponse({
        'message': 'Member role updated successfully',
        'boardId': board_id,
        'userId': user_id,
        'role': role,
    })


# === LISTS ===

@csrf_exempt
@require_http_methods(["GET", "POST"])
@token_required
@require_board_access
def board_lists_view(request, board_id):
    stores = request.stores

    if request.method == 'GET':
        return JsonResponse({'lists': _lists_with_cards(stores, board_id)})

    title = require_text(parse_json_body(request), 'title', 'List title is required')
    task_list = stores.lists.create(board_id, title)
    return JsonResponse({'message': 'List created successfully', 'list': task_list}, status=201)


@csrf_exempt
@require_http_methods(["PUT", "DELETE"])
@token_required
def list_detail_view(request, list_id):
    stores = request.stores
    task_list = _list_with_board(request, list_id)

    if request.method == 'DELETE':
        if not stores.lists.delete(task_list['id']):
            raise NotFoundError('List not found')
        return JsonResponse({'message': 'List deleted successfully', 'listId': task_list['id']})

    title = require_text(parse_json_body(request), 'title', 'List title is required')
    if not stores.lists.update(task_list['id'], title):
        raise NotFoundError('List not found or no changes made')
    return JsonResponse({'message': 'List updated successfully', 'list': stores.lists.find_by_id(task_list['id'])})


@csrf_exempt
@require_http_methods(["PATCH"])
@token_required
def list_move_view(request, list_id):
    task_list = _list_with_board(request, list_id)
    position = parse_position(parse_json_body(request).get('position'))

    moved = request.stores.lists.move(task_list['id'], position)
    return JsonResponse({
        'message': 'List moved successfully',
        'listId': moved['id'],
        'position': moved['position'],
        'list': moved,
    })


# === CARDS ===

@csrf_exempt
@require_http_methods(["POST"])
@token_required
def list_cards_view(request, list_id):
    task_list = _list_with_board(request, list_id)
    data = parse_json_body(request)
    title = require_text(data, 'title', 'Card title is required')

    card = request.stores.cards.create(
        task_list['id'],
        title,
        description=data.get('description'),
        due_date=parse_due_date(data.get('due_date')),
        labels=parse_labels(data.get('labels')),
    )
    return JsonResponse({'message': 'Card created successfully', 'card': card}, status=201)


@csrf_exempt
@require_http_methods(["GET", "PUT", "DELETE"])
@token_required
def card_detail_view(request, card_id):
    stores = request.stores
    card = _card_with_board(request, card_id)

    if request.method == 'GET':
        return JsonResponse({'card': dict(card, comments=stores.cards.get_comments(card['id']))})

    if request.method == 'DELETE':
        if not stores.cards.delete(card['id']):
            raise NotFoundError('Card not found')
        return JsonResponse({'message': 'Card deleted successfully', 'cardId': card['id']})

    data = parse_json_body(request)
    title = require_text(data, 'title', 'Card title is required')
    due_date = parse_due_date(data['due_date']) if 'due_date' in data else card['due_date']
    labels = parse_labels(data['labels']) if 'labels' in data else card['labels']
    result = stores.cards.update(
        card['id'],
        title,
        description=data.get('description', card['description']),
        due_date=due_date,
        labels=labels,
    )
    if not result:
        raise NotFoundError('Card not found or no changes made')
    return JsonResponse({'message': 'Card updated successfully', 'card': stores.cards.find_by_id(card['id'])})


@csrf_exempt
@require_http_methods(["PATCH"])
@token_required
def card_move_view(request, card_id):
    card = _card_with_board(request, card_id)
    position = parse_position(parse_json_body(request).get('position'))

    moved = request.stores.cards.move_in_list(card['id'], position)
    return JsonResponse({
        'message': 'Card moved successfully',
        'cardId': moved['id'],
        'position': moved['position'],
        'card': moved,
    })


@csrf_exempt
@require_http_methods(["PATCH"])
@token_required
def card_move_to_list_view(request, card_id):
    stores = request.stores
    card = _card_with_board(request, card_id)
    data = parse_json_body(request)
    if not data.get('listId'):
        raise ValidationError('List ID is required')
    position = parse_position(data.get('position'))

    target = stores.lists.find_by_id(stores.ids.normalize_id(data['listId']))
    if target is None:
        raise NotFoundError('List not found')
    if not stores.ids.ids_equal(target['board_id'], request.board['id']):
        raise ValidationError('Cards can only be moved between lists of the same board')

    moved = stores.cards.move_to_list(card['id'], target['id'], position)
    return JsonResponse({
        'message': 'Card moved to another list successfully',
        'cardId': moved['id'],
        'listId': moved['list_id'],
        'position': moved['position'],
        'card': moved,
    })


@csrf_exempt
@require_http_methods(["POST"])
@token_required
def card_comments_view(request, card_id):
    card = _card_with_board(request, card_id)
    content = require_text(parse_json_body(request), 'content', 'Comment content is required')

    comment = request.stores.cards.add_comment(card['id'], request.auth_user['id'], content)
    return JsonResponse({'message': 'Comment added successfully', 'comment': comment}, status=201)
