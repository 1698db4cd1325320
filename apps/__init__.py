# apps/__init__.py

"""
Kanban Board - Django applications

This package holds every application of the system:
- core: models, authentication, access control
- board: Kanban API, entity stores and backend selection
"""

__version__ = '0.1.0'
