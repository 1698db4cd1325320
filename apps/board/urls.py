# apps/board/urls.py

from django.urls import path
from . import views

app_name = 'board'

urlpatterns = [
    # Boards
    path('api/boards', views.boards_view, name='boards'),
    path('api/boards/<str:board_id>', views.board_detail_view, name='board_detail'),
    path('api/boards/<str:board_id>/star', views.board_star_view, name='board_star'),

    # Membership (owner only)
    path('api/boards/<str:board_id>/members', views.board_members_view, name='board_members'),
    path('api/boards/<str:board_id>/members/<str:user_id>', views.board_member_detail_view,
         name='board_member_detail'),

    # Lists
    path('api/lists/board/<str:board_id>', views.board_lists_view, name='board_lists'),
    path('api/lists/<str:list_id>', views.list_detail_view, name='list_detail'),
    path('api/lists/<str:list_id>/move', views.list_move_view, name='list_move'),

    # Cards
    path('api/cards/list/<str:list_id>', views.list_cards_view, name='list_cards'),
    path('api/cards/<str:card_id>', views.card_detail_view, name='card_detail'),
    path('api/cards/<str:card_id>/move', views.card_move_view, name='card_move'),
    path('api/cards/<str:card_id>/move-to-list', views.card_move_to_list_view, name='card_move_to_list'),
    path('api/cards/<str:card_id>/comments', views.card_comments_view, name='card_comments'),
]
