"""
Ledgerbook - Source Package

The ledger core of a small-business accounting application: chart of
accounts, balanced journal entries, and the figures every dashboard and
report is derived from.

DESIGN PRINCIPLES:
1. Every entry balances, or it is not recorded
2. Fail early, fail visibly
3. No silent corrections
4. Every figure is recomputed from journal lines
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledgerbook Team"
