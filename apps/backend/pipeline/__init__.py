"""
Extraction and ingestion pipeline for startup directory pages.

Turns fetched listing and jobs pages into scored company and job records and
writes them to PostgreSQL.
"""

__version__ = "1.0.0"
