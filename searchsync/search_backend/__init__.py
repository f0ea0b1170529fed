"""Search backend adapters.

Primary components:
- ``base``: abstract ``SearchBackend`` interface and common exceptions.
- ``opensearch``: OpenSearch implementation of the interface.
- ``factory``: helpers to construct a backend from typed config.

Guidance:
- Prefer constructing via ``factory.create_search_backend_from_config`` so
  indexables stay decoupled from a specific backend.
"""
