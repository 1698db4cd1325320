# apps/core/admin.py

from django.contrib import admin
from django.utils.html import format_html

from .models import Board, BoardMember, Card, Comment, TaskList, User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    """Board users; passwords are only ever changed through the API"""

    list_display = ['username', 'email', 'owned_boards_count', 'created_at']
    search_fields = ['username', 'email']
    ordering = ['-created_at']
    readonly_fields = ['password', 'created_at', 'updated_at']

    def owned_boards_count(self, obj):
        return obj.owned_boards.count()

    owned_boards_count.short_description = 'Boards'


class BoardMemberInline(admin.TabularInline):
    model = BoardMember
    extra = 0
    fields = ['user', 'role', 'created_at']
    readonly_fields = ['created_at']


class TaskListInline(admin.TabularInline):
    """Positions are maintained by the API, read only here"""
    model = TaskList
    extra = 0
    fields = ['title', 'position']
    readonly_fields = ['position']
    ordering = ['position']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Board)
class BoardAdmin(admin.ModelAdmin):
    """Admin for Kanban boards"""

    list_display = ['title', 'owner', 'background_preview', 'is_starred', 'lists_count', 'created_at']
    list_filter = ['is_starred', 'created_at']
    search_fields = ['title', 'description', 'owner__username']
    readonly_fields = ['created_at', 'updated_at']

    inlines = [BoardMemberInline, TaskListInline]

    def lists_count(self, obj):
        return obj.lists.count()

    lists_count.short_description = 'Lists'

    def background_preview(self, obj):
        """Board background swatch"""
        return format_html(
            '<div style="width: 20px; height: 20px; background-color: {}; '
            'border: 1px solid #ccc; border-radius: 3px;"></div>',
            obj.background
        )

    background_preview.short_description = 'Background'


class CardInline(admin.TabularInline):
    model = Card
    extra = 0
    fields = ['title', 'position', 'due_date']
    readonly_fields = ['position']
    ordering = ['position']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(TaskList)
class TaskListAdmin(admin.ModelAdmin):
    list_display = ['title', 'board', 'position', 'cards_count']
    list_filter = ['board']
    search_fields = ['title', 'board__title']
    ordering = ['board', 'position']
    readonly_fields = ['board', 'position', 'created_at', 'updated_at']

    inlines = [CardInline]

    def cards_count(self, obj):
        return obj.cards.count()

    cards_count.short_description = 'Cards'

    def has_add_permission(self, request):
        return False


class CommentInline(admin.TabularInline):
    """Comments are immutable"""
    model = Comment
    extra = 0
    fields = ['user', 'content', 'created_at']
    readonly_fields = ['user', 'content', 'created_at']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Card)
class CardAdmin(admin.ModelAdmin):
    list_display = ['title', 'list', 'position', 'due_date', 'created_at']
    list_filter = ['list__board', 'due_date']
    search_fields = ['title', 'description']
    readonly_fields = ['list', 'position', 'created_at', 'updated_at']

    inlines = [CommentInline]

    def has_add_permission(self, request):
        return False
