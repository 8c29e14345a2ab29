"""Reference lookup services consulted during normalization."""

from .cache import ReferenceCache, TranslationCache
from .card_catalog import CardCatalogLoader, build_card_cache, index_catalog

__all__ = ["CardCatalogLoader", "ReferenceCache", "TranslationCache", "build_card_cache", "index_catalog"]
