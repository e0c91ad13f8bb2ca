"""
deslack: decentralized group chat over a point-to-point transport.
"""

__version__ = "0.1.0"
