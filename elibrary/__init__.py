"""E-Library - Inventory and Lending Package

This package contains the core lending engine:
- Data models (book.py)
- Database layer (database.py)
- Inventory and ledger stores (repositories.py)
- Transactions (unit_of_work.py) and conflict retries (retry.py)
- Borrow/return logic (library.py)
- Command/query pipeline (commands.py, validators.py, pipeline.py)
"""
