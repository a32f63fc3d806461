"""
Routing Dashboard - analytics API for a Lightning routing node.
"""

__version__ = "1.0.0"
