# apps/core/models.py

import json

from django.db import models


class LabelListField(models.TextField):
    """
    Card labels as a list of strings in Python, JSON text in the database.

    Business logic only ever sees the list; the text form stays inside the
    relational backend.
    """

    description = 'List of label identifiers stored as JSON text'

    def from_db_value(self, value, expression, connection):
        return self.to_python(value)

    def to_python(self, value):
        if value is None or value == '':
            return []
        if isinstance(value, (list, tuple)):
            return [str(label) for label in value]
        try:
            labels = json.loads(value)
        except (TypeError, ValueError):
            return []
        return [str(label) for label in labels] if isinstance(labels, list) else []

    def get_prep_value(self, value):
        if value is None:
            return None
        return json.dumps(list(value))


class User(models.Model):
    """
    Board user

    Only the password hash ever changes after creation.
    """

    username = models.CharField(max_length=150, unique=True)
    email = models.EmailField(max_length=254, unique=True)
    password = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'
        ordering = ['id']

    def __str__(self):
        return self.username


class Board(models.Model):
    """Kanban board, owned by exactly one user"""

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='owned_boards'
    )
    background = models.CharField(max_length=50, default='#0079bf')
    is_starred = models.BooleanField(default=False)
    members = models.ManyToManyField(
        User,
        through='BoardMember',
        related_name='shared_boards'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'boards'
        ordering = ['-is_starred', '-created_at']

    def __str__(self):
        return self.title


class BoardMember(models.Model):
    """Non-owner grant of board access"""

    ROLE_CHOICES = [
        ('admin', 'Admin'),
        ('member', 'Member'),
        ('viewer', 'Viewer'),
    ]

    board = models.ForeignKey(
        Board,
        on_delete=models.CASCADE,
        related_name='memberships'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='memberships'
    )
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='member')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'board_members'
        unique_together = ['board', 'user']

    def __str__(self):
        return f"{self.user} @ {self.board} ({self.role})"


class TaskList(models.Model):
    """Column of a board; ``position`` is dense among the board's lists"""

    title = models.CharField(max_length=200)
    board = models.ForeignKey(
        Board,
        on_delete=models.CASCADE,
        related_name='lists'
    )
    position = models.IntegerField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'lists'
        ordering = ['position', 'id']
        indexes = [
            models.Index(fields=['board', 'position'], name='lists_board_position_idx'),
        ]

    def __str__(self):
        return f"{self.title} - {self.board.title}"


class Card(models.Model):
    """Card of a list; ``position`` is dense among the list's cards"""

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    list = models.ForeignKey(
        TaskList,
        on_delete=models.CASCADE,
        related_name='cards'
    )
    position = models.IntegerField()
    due_date = models.DateTimeField(null=True, blank=True)
    labels = LabelListField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'cards'
        ordering = ['position', 'id']
        indexes = [
            models.Index(fields=['list', 'position'], name='cards_list_position_idx'),
        ]

    def __str__(self):
        return self.title


class Comment(models.Model):
    """Immutable comment on a card"""

    content = models.TextField()
    card = models.ForeignKey(
        Card,
        on_delete=models.CASCADE,
        related_name='comments'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='comments'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'comments'
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"Comment by {self.user.username} on {self.card.title}"
