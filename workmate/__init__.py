"""WorkMate agent core - conversational response pipeline."""

__version__ = "0.1.0"
