# This file makes the models directory a Python package 
from .cache_entry import CacheEntry

__all__ = [
    'CacheEntry',
] 
