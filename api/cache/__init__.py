"""
In-process response cache: size accounting, LRU/TTL store, key derivation
and operational stats.
"""
