"""
Vesting distribution components:
- Merkle proof verification and off-system tree building
- Phase ledger with funding accounting and one-shot claims
"""

__all__ = []
