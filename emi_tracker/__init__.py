"""
EMI Tracker - Source Package

A small personal ledger that tracks installment (EMI) loans:
record the lump sum received, then settle it period by period.

DESIGN PRINCIPLES:
1. Balances are always derived from entries, never stored
2. Fail early, fail visibly
3. No silent corrections
4. A period is never settled twice
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "EMI Tracker Team"
