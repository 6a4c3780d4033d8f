"""
Organization Ledger

A multi-tenant ledger whose account balances always equal the net effect of
the income, expense and transfer transactions referencing them. All amounts
use Decimal.
"""

__version__ = "1.0.0"
