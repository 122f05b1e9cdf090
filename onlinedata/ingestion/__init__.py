"""
Data ingestion module for online network feeds.

Handles downloading status and whazzup files, decompressing and
parsing them and loading them into the relational database.
"""

from onlinedata.ingestion.downloader import HttpDownloader
from onlinedata.ingestion.controller import DownloadState, OnlineDataController

__all__ = ['HttpDownloader', 'DownloadState', 'OnlineDataController']
