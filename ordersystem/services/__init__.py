"""
Services Package

Persistence (keyed store and backups), the optional remote row-store
mirror and order image handling. Import from the subpackages directly.
"""
