"""pgsession: resilient PostgreSQL sessions for ETL loaders."""

__version__ = "1.0.0"
