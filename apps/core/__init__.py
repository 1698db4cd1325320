# apps/core/__init__.py

"""
Core - base application of the Kanban board

Contains:
- Relational models (User, Board, BoardMember, TaskList, Card, Comment)
- Error taxonomy and identifier adapters
- Board access control
- Token authentication service and middleware
- Seed command for development
"""
