"""
Startup directory crawler: batch orchestration and the scraper service.
"""

from .orchestrator import BatchResult, ErrorKind, FetchOrchestrator, TargetError
from .scraper import ScrapeStats, StartupScraper

__all__ = [
    'BatchResult', 'ErrorKind', 'FetchOrchestrator', 'TargetError',
    'ScrapeStats', 'StartupScraper',
]
