"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import Numeric, Uuid

# UUID type that works with both databases (native on PostgreSQL, CHAR(32) on SQLite)
UUIDType = Uuid

# Currency amounts: 2 decimal places, returned as Decimal
Money = Numeric(14, 2, asdecimal=True)

# Rates and day counts from rate configurations
RateValue = Numeric(12, 6, asdecimal=True)
