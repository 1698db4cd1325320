# apps/board/__init__.py

"""
Board - Kanban application

Contains:
- Position reindexer for lists and cards
- Entity stores for the relational and the document backend
- Backend selector
- JSON views for boards, lists and cards
"""
