"""Privacy-first visit analytics: ingestion, queries, funnels, alerts, realtime."""

__version__ = "0.1.0"
