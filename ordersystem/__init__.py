"""
Order System - Source Package

Bookkeeping core for a small watch-resale business: orders, clients,
inventory, monthly expenses and profit reports, persisted to a keyed
local medium with rolling backups.

DESIGN PRINCIPLES:
1. Every mutation is reversible (undo/redo)
2. No half-applied state - failed saves roll back in memory
3. Money is formatted in exactly one place (the currency engine)
4. Every surfaced error produces one visible notification
5. Storage medium and remote store are swappable
"""

__version__ = "1.2.0"
__author__ = "Order System Team"
