"""Attribute and term synchronization between a provider catalog and client catalogs."""

__version__ = "0.1.0"
