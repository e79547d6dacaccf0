"""
Strategy Arena - champion/challenger competition and ensemble capital
allocation for strategies trading binary UP/DOWN prediction markets.
"""

__version__ = "1.0.0"
