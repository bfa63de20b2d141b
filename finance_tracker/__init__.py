"""
Finance Tracker - Source Package

A personal finance tracker for accounts, categories, transactions,
budgets and savings goals, backed by a hosted database service.

DESIGN PRINCIPLES:
1. The backend is the single source of truth
2. Balances are never computed on the client
3. Reads degrade quietly, writes fail loudly
4. Every mutation is auditable
5. The backend is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
