"""
Parts Harvester: ingestion core for the used-parts mirror

Modules:
- extractor: listing links, brand/model filters, part-record table parsing
- tracker: content-derived identities, change tracking and tombstones
- assets: image path mapping and versioned downloads
- crawler: crawl orchestration and CLI
- database: SQLite storage layer
- common: Config, Fetcher, run context, errors
"""

__version__ = "0.1.0"
