"""Library Ledger - Circulation Core Package

This package contains the circulation ledger and its consumers:
- Transactional circulation service (circulation.py)
- Catalog and loan stores (stores/)
- Availability read model (read_model.py)
- API endpoints (api.py)
- CLI interface (main.py)
- Database layer (database.py)
"""

__version__ = "1.0.0"
