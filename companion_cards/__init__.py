"""
Companion Cards - Character card import for conversational companions

Recovers persona definitions from JSON files and PNG character cards
(tEXt/zTXt/iTXt metadata) and normalizes them into a single record type.
"""

__version__ = "0.1.0"
