"""Remote build cache client.

Entry points live in ``stashr.core.cache.cache`` (``restore_cache``,
``save_cache``). This package module stays import-free so that low-level
modules can import ``stashr.core.cache.errors`` without pulling in the
backends.
"""
