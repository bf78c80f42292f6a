"""
Release catalog: filter registry, query composition and persistence.
"""
