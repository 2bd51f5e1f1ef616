"""
LocalDirectory Test Suite.

- unit/: importers, matching, dedup, sync queue, collector, scheduler, API and CLI
- integration/: CSV-to-directory pipeline runs against the in-memory store
- conftest.py: Shared fixtures and test configuration

Run tests with: pytest
"""
