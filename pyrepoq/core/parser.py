"""Parses the delimited lines `repoquery` prints for the query format.

Each matching package produces one line carrying ten fields. `repoquery`
prints unset header fields as some spelling of `none`; this module turns
those into `None` so the sentinel never reaches callers.
"""

import logging
import posixpath
from typing import List, NamedTuple, Optional

from .constants import PACKAGE_LOCATION
from .errors import MalformedOutputError
from .models import PackageRevision, timestamp_from_seconds

logger = logging.getLogger(__name__)

DELIMITER = "<=>"

# Header tags in the order they appear on every output line.
QUERY_FIELDS = [
    "RELATIVEPATH",
    "NAME",
    "VERSION",
    "RELEASE",
    "ARCH",
    "BUILDTIME",
    "PACKAGER",
    "LOCATION",
    "URL",
    "BUILDHOST",
]

QUERY_FORMAT = DELIMITER.join(f"%{{{field}}}" for field in QUERY_FIELDS)


def none_if_absent(value: Optional[str]) -> Optional[str]:
    """Maps the `none` sentinel (any case) to None."""
    if value is None or value.lower() == "none":
        return None
    return value


class RepoQueryLine(NamedTuple):
    """One parsed output line."""

    relative_path: Optional[str]
    name: Optional[str]
    version: Optional[str]
    release: Optional[str]
    arch: Optional[str]
    build_time: Optional[int]
    packager: Optional[str]
    location: Optional[str]
    url: Optional[str]
    build_host: Optional[str]

    @property
    def revision(self) -> str:
        return f"{self.name}-{self.version}-{self.release}.{self.arch}"

    @property
    def file_name(self) -> Optional[str]:
        """The RPM file name, without the directory part of the relative path."""
        if self.relative_path is None:
            return None
        return posixpath.basename(self.relative_path)

    def to_revision(self) -> PackageRevision:
        """Builds the PackageRevision this line describes."""
        timestamp = timestamp_from_seconds(self.build_time) if self.build_time is not None else None
        comment = f"Built on {self.build_host}" if self.build_host is not None else None
        return PackageRevision(
            self.revision,
            timestamp,
            user=self.packager,
            trackback_url=self.url,
            revision_comment=comment,
            data={PACKAGE_LOCATION: self.location},
        )


def _parse_build_time(value: Optional[str], line: str) -> Optional[int]:
    if value is None:
        return None
    try:
        seconds = int(value)
    except ValueError as e:
        raise MalformedOutputError(line, f"build time {value!r} is not an integer") from e
    try:
        timestamp_from_seconds(seconds)
    except (ValueError, OverflowError, OSError) as e:
        raise MalformedOutputError(line, f"build time {value!r} is out of range") from e
    return seconds


def parse_line(line: str) -> RepoQueryLine:
    """Splits one output line into its fields.

    Args:
        line (str): A line printed by `repoquery` for `QUERY_FORMAT`.

    Returns:
        RepoQueryLine: The parsed fields, `None` where the value was unset.

    Raises:
        MalformedOutputError: If the line does not carry exactly ten fields
            or the build time is not an integer a `datetime` can hold.
    """
    parts = line.split(DELIMITER)
    if len(parts) != len(QUERY_FIELDS):
        raise MalformedOutputError(line, f"expected {len(QUERY_FIELDS)} fields, got {len(parts)}")

    values = [none_if_absent(part) for part in parts]
    values[5] = _parse_build_time(values[5], line)
    return RepoQueryLine(*values)


def parse_output(stdout: Optional[List[str]]) -> List[RepoQueryLine]:
    """Parses the lines of `repoquery` stdout.

    Empty lines at the end of the output are dropped. Any other line,
    including an empty or whitespace-only one between results, must follow
    the query format.

    Returns:
        List[RepoQueryLine]: One entry per matching package, in output order.

    Raises:
        MalformedOutputError: If a line does not follow the query format.
    """
    lines = list(stdout or [])
    while lines and not lines[-1]:
        lines.pop()
    logger.debug(f"Parsing {len(lines)} repoquery output line(s)")
    return [parse_line(line) for line in lines]
