"""
Narzędzia pomocnicze
"""
