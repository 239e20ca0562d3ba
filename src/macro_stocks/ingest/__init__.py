"""Flat-file ingestion: schema validation and per-source loaders."""

from .base import REQUIRED_FIELDS, select_fields, validate_columns
from .sources import load_source, load_sources, read_source

__all__ = [
    'REQUIRED_FIELDS',
    'load_source',
    'load_sources',
    'read_source',
    'select_fields',
    'validate_columns',
]
