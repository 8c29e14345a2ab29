"""Page retrieval for the statistics site."""

from .fetcher import FetchResult, Fetcher, PageQuery
from .http_client import PageClient

__all__ = ["FetchResult", "Fetcher", "PageClient", "PageQuery"]
