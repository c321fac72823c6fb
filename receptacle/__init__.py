"""
Receptacle Rules - Retention and Importance Policy Engine

Receptacle Rules decides, for the items held by one sender or source, which
items are deleted, archived or kept, which attachments are exported, and which
items have their importance elevated.
"""

from receptacle._version import __version__

__all__ = ["__version__"]
