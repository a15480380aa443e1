"""
Trip listings: provider registry, query building, multi-provider
aggregation and the HTTP endpoints on top of them.
"""
