"""Library Loans - lending operations for a small library

This package contains:
- Domain models (models.py)
- Overdue computation (overdue.py)
- Database layer (database.py)
- Library management logic and loan lifecycle (library.py)
- API endpoints (api.py)
- CLI interface (main.py)
"""
