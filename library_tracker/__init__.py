"""Personal Library Tracker - Core Application Package

This package contains the core application modules including:
- API endpoints (api.py)
- Authentication dependencies (auth.py)
- Book store (library.py) and credential store (users.py)
- Cover uploads (uploads.py)
- Submission validation (validators.py)
- CLI interface (main.py)
- Data models (book.py, user.py)
- Database layer (database.py)
"""

__version__ = "1.0.0"
