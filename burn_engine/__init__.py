"""
Automated treasury burn engine.

Collects creator fees, splits them between secondary tokens and the root
treasury, buys the governed token back on the exchange and burns it.
"""
__version__ = "0.1.0"
