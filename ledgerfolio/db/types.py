"""
Column types for Ledgerfolio models.

SQLite has no exact decimal type; SQLAlchemy's Numeric goes through REAL and
loses precision. Decimals are stored as their string form instead and parsed
back into Decimal on read.
"""

from decimal import Decimal

from sqlalchemy.types import String, TypeDecorator

from ledgerfolio.core.types import decimal_to_str, to_decimal


class DecimalString(TypeDecorator):
    """Store ``Decimal`` values as exact strings."""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return decimal_to_str(to_decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)
