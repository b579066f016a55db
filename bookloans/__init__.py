"""Library Issuance - core application package

This package contains:
- Issuance engine: issue, return, edit and delete loans (issuance.py)
- Catalog, loan and user stores (catalog.py, loans.py, users.py)
- Database layer (database.py)
- API endpoints (api.py)
- CLI interface (main.py)
"""

__version__ = "1.0.0"
