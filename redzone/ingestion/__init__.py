"""
RedZone Ingestion Module
========================

Feed fetching, metadata normalization, tag matching and per-source
ingestion orchestration.
"""
