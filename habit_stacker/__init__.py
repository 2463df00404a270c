"""
Habit Stacker - local-first rdzeń aplikacji do budowania nawyku
"""

__version__ = "0.1.0"
