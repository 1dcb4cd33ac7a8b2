"""State/store layer.

This package is the single source of truth for how records received from
the server, created locally, or hydrated from the persistent cache are kept
per namespace, and for the change notifications emitted when they move.
"""
