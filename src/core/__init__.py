"""
Core Domain Layer - the hexagon.

Pure business logic of the field service ticket lifecycle:
- No framework dependencies (Django, Celery, ...)
- Fully testable without a database
- Infrastructure agnostic
"""
