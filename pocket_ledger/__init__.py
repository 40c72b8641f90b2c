"""
Pocket Ledger - Source Package

A natural-language expense ledger driven by an on-device language model.
The user types "add 4kg mango of 20"; a local GGUF model turns it into a
JSON command; the command is validated and written to the ledger.

DESIGN PRINCIPLES:
1. The model is a TRANSLATOR, not a bookkeeper
2. Malformed model output degrades, it never crashes
3. One generation in flight, ever
4. Every step is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Pocket Ledger Team"
