"""
PrimalBet economy client and vault orchestration.
"""
__version__ = "0.1.0"
