"""
Sitepulse: client-resident analytics for interactive sites.

Identity, consent, context enrichment and multi-sink event dispatch with
batched, exit-safe delivery to a first-party ingestion endpoint.
"""

__version__ = "0.3.0"
