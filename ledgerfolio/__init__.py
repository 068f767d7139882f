"""
Ledgerfolio - portfolio valuation and ledger-replay engine.

Turns an append-only history of transactions and liability payments into
point-in-time holdings, tax lots, liability balances, net worth and
time-weighted returns.
"""

__version__ = "0.1.0"
