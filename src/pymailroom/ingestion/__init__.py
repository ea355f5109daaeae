"""Ingestion layer.

This package contains adapters that turn raw store rows and change-feed
payloads into normalized records and :class:`pymailroom.state.events.ChangeEvent`.
"""

__all__: list[str] = []
