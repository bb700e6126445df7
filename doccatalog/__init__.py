"""
doccatalog — role-aware live document catalog.

Push-subscribed categories, tags and documents; role-based visibility;
client-side refinement (search, tag, audience facets, sort) and
URL-style shareable filter state with pagination.
"""

__version__ = "1.0.0"
__all__ = ["engine", "security", "documents", "catalog", "store", "db"]
