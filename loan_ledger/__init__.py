"""
Loan Ledger

Simple-interest lending ledger: loan origination, payment recording and
point-in-time balance derivation using Decimal arithmetic throughout.
"""

__version__ = "1.0.0"
