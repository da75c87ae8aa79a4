"""Test suite for stashr.

Test Structure:
- unit/: Unit tests for individual components
  - api/http/: HTTP client and retry helper
  - cache/: Orchestrator, keys, fingerprints, paths, archives
    - backends/: REST and RPC protocol backends
    - transfer/: Chunked upload, streamed and segmented download, progress
  - config/: Settings and option loading from the environment
  - logging/, utils/: Sanitization and logging setup
- fakes.py: In-memory backend, archiver, resolver and blob fakes
- conftest.py: Shared fixtures and test configuration
"""
