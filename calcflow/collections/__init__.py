"""calcflow.collections — monitored data collections and record filters."""

from calcflow.collections.filters import match_filter, sort_records
from calcflow.collections.manager import CollectionManager

__all__ = ["CollectionManager", "match_filter", "sort_records"]
