"""
Ubazol delivery-client state core.

Cart, orders, delivery addresses, notifications and profile side-data,
persisted to a key-value store through a write-behind queue.
"""

__version__ = "0.1.0"
