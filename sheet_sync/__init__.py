"""Seller sheet -> PostgreSQL sync (reconciliation core + batch CLI)."""

__version__ = "0.1.0"
