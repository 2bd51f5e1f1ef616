"""LocalDirectory - review import, deduplication and business matching pipeline."""

__version__ = "0.1.0"
