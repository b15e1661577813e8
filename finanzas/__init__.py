"""
Finanzas - Source Package

A personal finance tracker: income, expenses, savings and credit-card
installment purchases, aggregated into a summary, a savings/wishlist
tracker, a card payment tracker and simple reports.

DESIGN PRINCIPLES:
1. Validate at the boundary, compute on trusted data
2. Derived views are recomputed, never cached
3. No silent corrections
4. Every change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finanzas Team"
