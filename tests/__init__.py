"""Tests for searchsync.

Backends are replaced by in-memory fakes (``tests.fakes``) and mocked
clients, so the suite runs without redis or OpenSearch.
"""
