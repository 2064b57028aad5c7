"""
Blockchain adapter implementations.
"""

from .base import BaseAdapter
from .ethereum import EthereumAdapter
from .fabric import FabricAdapter

__all__ = [
    "BaseAdapter",
    "EthereumAdapter",
    "FabricAdapter",
]
