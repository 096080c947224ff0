"""Cellarbook - a personal wine cellar catalog with drink windows, search and an AI sommelier."""

from cellarbook.catalog_query import (
    CatalogQuery,
    drink_window_status,
    extract_filter_facets,
    filter_wines,
    run_query,
    search_wines,
    sort_wines,
)
from cellarbook.schema import Filters, Wine
from cellarbook.similarity import SimilarityEngine, SimilarityScore, rank_similar

__version__ = "0.1.0"

__all__ = [
    'CatalogQuery',
    'Filters',
    'SimilarityEngine',
    'SimilarityScore',
    'Wine',
    'drink_window_status',
    'extract_filter_facets',
    'filter_wines',
    'rank_similar',
    'run_query',
    'search_wines',
    'sort_wines',
    '__version__',
]
