from .postgrest import PostgrestClient, parse_content_range
from .query import RowQuery

__all__ = ["PostgrestClient", "RowQuery", "parse_content_range"]
