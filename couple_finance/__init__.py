"""
Couple Finance - Source Package

Shared-finance core for two partners: forming and dissolving a couple,
splitting expenses, and tracking savings goals they contribute to jointly.

DESIGN PRINCIPLES:
1. Money is Decimal, never float
2. Every state transition is atomic or does not happen
3. Errors carry a machine-readable kind
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Couple Finance Team"
