"""GTFS ZIP reader - extracts and validates required files."""

from __future__ import annotations

import io
import zipfile

from transit_arrivals.logging import get_logger

logger = get_logger(__name__)

# Files required to build the arrival indices
REQUIRED_FILES = {"stops.txt", "trips.txt", "stop_times.txt"}

# Without calendar_dates.txt no service runs on any date
OPTIONAL_FILES = {"calendar_dates.txt", "routes.txt"}


class MissingRequiredFileError(Exception):
    """Raised when a required GTFS file is missing from the ZIP."""


class GtfsZipReader:
    """Opens and validates a GTFS ZIP archive."""

    def __init__(self, data: bytes) -> None:
        """Initialize reader with ZIP bytes.

        Raises:
            zipfile.BadZipFile: If data is not a valid ZIP.
            MissingRequiredFileError: If required files are missing.
        """
        self._zip = zipfile.ZipFile(io.BytesIO(data))
        self._names = self._index_names()
        self._validate_required_files()

    def _index_names(self) -> dict[str, str]:
        """Map bare file names to archive members.

        Some agencies ship the feed inside a single top-level folder.
        """
        names: dict[str, str] = {}
        for member in self._zip.namelist():
            if member.endswith("/"):
                continue
            names.setdefault(member.rsplit("/", 1)[-1], member)
        return names

    def _validate_required_files(self) -> None:
        """Ensure all required GTFS files exist in the archive."""
        missing = REQUIRED_FILES - set(self._names)
        if missing:
            msg = f"Missing required GTFS files: {sorted(missing)}"
            raise MissingRequiredFileError(msg)

        present_optional = OPTIONAL_FILES & set(self._names)
        logger.info(
            "GTFS ZIP validated",
            required_files=sorted(REQUIRED_FILES),
            optional_present=sorted(present_optional),
            total_files=len(self._names),
        )

    def has_file(self, filename: str) -> bool:
        return filename in self._names

    def open_file(self, filename: str) -> io.TextIOWrapper:
        """Open a file from the ZIP archive for text reading.

        Returns:
            TextIOWrapper suitable for csv.DictReader.
        """
        binary_stream = self._zip.open(self._names.get(filename, filename))
        return io.TextIOWrapper(binary_stream, encoding="utf-8-sig")

    def list_files(self) -> list[str]:
        """List all GTFS filenames in the archive."""
        return sorted(self._names)

    def close(self) -> None:
        """Close the ZIP archive."""
        self._zip.close()

    def __enter__(self) -> GtfsZipReader:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
