"""
stocktemp - Stocktwits symbol temperature tracking

Polls the Stocktwits stream for each watched symbol, stores newly posted
messages and keeps a per-symbol activity ("temperature") profile.
"""

__version__ = "1.0.0"
