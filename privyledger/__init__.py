"""
PrivyLedger - Local Data Core

The persistence and backup core of a local-first personal finance ledger.
All data lives on the user's machine; backups are full, versioned exports
that can be sealed under a passphrase.

DESIGN PRINCIPLES:
1. The local store is the only source of truth
2. Imports are all-or-nothing
3. Fail early, fail visibly: nothing is written on a rejected import
4. Every step must be auditable, without ever logging secrets
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "PrivyLedger Team"
