"""
Chama Ledger - Source Package

Bookkeeping for a savings group (chama): members, contributions,
loans, insurance premiums and the merry-go-round rotation.

DESIGN PRINCIPLES:
1. AI drafts → Treasurer confirms → System validates
2. Fail early, fail visibly
3. No silent corrections
4. Every write is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Chama Ledger Team"
