"""
FUN FARM Rewards Service - reward calculation and anti-abuse core
"""
__version__ = "1.0.0"
