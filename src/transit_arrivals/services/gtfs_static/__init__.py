"""Static GTFS loading pipeline and schedule indices."""

from transit_arrivals.services.gtfs_static.calendar import ServiceCalendar
from transit_arrivals.services.gtfs_static.fetcher import GtfsStaticFetcher
from transit_arrivals.services.gtfs_static.index import StopTripIndex
from transit_arrivals.services.gtfs_static.lines import LineCatalog
from transit_arrivals.services.gtfs_static.loader import (
    LoadReport,
    StaticSchedule,
    StaticScheduleLoader,
)
from transit_arrivals.services.gtfs_static.normalizer import GtfsNormalizer
from transit_arrivals.services.gtfs_static.parser import GtfsParser
from transit_arrivals.services.gtfs_static.reader import GtfsZipReader

__all__ = [
    "GtfsNormalizer",
    "GtfsParser",
    "GtfsStaticFetcher",
    "GtfsZipReader",
    "LineCatalog",
    "LoadReport",
    "ServiceCalendar",
    "StaticSchedule",
    "StaticScheduleLoader",
    "StopTripIndex",
]
