"""
Device log test suite.

This package contains:
- unit/: Unit tests (codec, lock, record store, query functions, config)
- integration/: Integration tests (LogService over a real file, HTTP API)
"""
