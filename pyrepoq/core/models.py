"""Value types passed through the query pipeline.

None of these objects are shared between queries: every call to the query
executor builds its own parameters, process output and revision record, so
they can be handed across threads freely.
"""

import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional
from urllib.parse import quote_plus, urlsplit, urlunsplit

from .constants import PACKAGE_LOCATION, SUCCESS_RETURN_CODE
from .errors import RepoQueryError

SUPPORTED_SCHEMES = ("http", "https", "file")


class RepoUrl:
    """The location of a yum repository, with optional basic-auth credentials.

    Attributes:
        url (str): The repository URL or path, exactly as configured.
        username (Optional[str]): The user to authenticate as, if any.
        password (Optional[str]): The password for `username`, if any.
    """

    def __init__(self, url: str, username: Optional[str] = None, password: Optional[str] = None) -> None:
        self.url = url
        self.username = username
        self.password = password

    def has_credentials(self) -> bool:
        return bool(self.username) and bool(self.password)

    def accepts_credentials(self) -> bool:
        """True for the remote schemes that can carry basic-auth credentials."""
        return urlsplit(self.url or "").scheme.lower() in ("http", "https")

    def url_with_credentials(self) -> str:
        """Returns the URL with the credentials embedded in its authority.

        The password is form-encoded so reserved characters survive inside
        the `user:password@host` part. Without a complete set of credentials
        the URL is returned unchanged.

        Returns:
            str: The URL to hand to `repoquery`.
        """
        if not self.has_credentials():
            return self.url
        parts = urlsplit(self.url)
        netloc = f"{self.username}:{quote_plus(self.password, safe='*')}@{parts.netloc}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))

    def repo_id(self) -> str:
        """Derives a stable repository id from the URL (md5 hex digest)."""
        return hashlib.md5(self.url.encode("utf-8")).hexdigest()

    def validate(self) -> List[str]:
        """Checks that the location can be handed to `repoquery`.

        Returns:
            List[str]: Human-readable problems; empty when the URL is usable.
        """
        errors: List[str] = []
        if not self.url or not self.url.strip():
            errors.append("Repository url not specified")
            return errors

        scheme = urlsplit(self.url).scheme.lower()
        if scheme not in SUPPORTED_SCHEMES:
            errors.append("Invalid URL: Only 'file', 'http' and 'https' protocols are supported.")
        elif scheme == "file" and (self.username or self.password):
            errors.append("File protocol does not support username and/or password.")

        if self.password and not self.username:
            errors.append("Password specified without a username.")
        return errors

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RepoUrl):
            return NotImplemented
        return (self.url, self.username, self.password) == (other.url, other.username, other.password)

    def __hash__(self) -> int:
        return hash((self.url, self.username, self.password))

    def __repr__(self) -> str:
        # Never print the password.
        masked = "****" if self.password else None
        return f"RepoUrl(url={self.url!r}, username={self.username!r}, password={masked!r})"


class RepoQueryParams(NamedTuple):
    """Everything needed to query one package on one repository."""

    repo_id: str
    repo_url: RepoUrl
    package_spec: str

    @classmethod
    def for_url(
        cls,
        url: str,
        package_spec: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        repo_id: Optional[str] = None,
    ) -> "RepoQueryParams":
        """Builds parameters for a URL, deriving the repo id when none is given."""
        repo_url = RepoUrl(url, username, password)
        return cls(repo_id or repo_url.repo_id(), repo_url, package_spec)


class ProcessOutput(NamedTuple):
    """Exit status and captured output of a finished process."""

    return_code: int
    stdout: List[str]
    stderr: List[str]

    @classmethod
    def of(cls, return_code: int, stdout: Optional[List[str]] = None, stderr: Optional[List[str]] = None) -> "ProcessOutput":
        return cls(return_code, list(stdout or []), list(stderr or []))

    def is_zero_return_code(self) -> bool:
        return self.return_code == SUCCESS_RETURN_CODE

    def stderr_text(self) -> str:
        return "\n".join(self.stderr or [])


class PackageRevision:
    """A resolved package build, as reported by `repoquery`.

    Instances are read-only once built. A revision whose fields are all
    absent (see `absent()`) stands for a query that matched nothing.

    Attributes:
        revision (Optional[str]): `name-version-release.arch`.
        timestamp (Optional[datetime]): Build time, timezone-aware UTC.
        user (Optional[str]): The packager.
        trackback_url (Optional[str]): The package URL field.
        revision_comment (Optional[str]): `Built on <buildhost>`.
        data (Dict[str, Optional[str]]): Extra fields, at least the
            download location under `PACKAGE_LOCATION`.
    """

    __slots__ = ("_revision", "_timestamp", "_user", "_trackback_url", "_revision_comment", "_data")

    def __init__(
        self,
        revision: Optional[str],
        timestamp: Optional[datetime],
        user: Optional[str] = None,
        trackback_url: Optional[str] = None,
        revision_comment: Optional[str] = None,
        data: Optional[Dict[str, Optional[str]]] = None,
    ) -> None:
        self._revision = revision
        self._timestamp = timestamp
        self._user = user
        self._trackback_url = trackback_url
        self._revision_comment = revision_comment
        self._data = dict(data or {})
        self._data.setdefault(PACKAGE_LOCATION, None)

    @classmethod
    def absent(cls) -> "PackageRevision":
        return cls(None, None)

    @property
    def revision(self) -> Optional[str]:
        return self._revision

    @property
    def timestamp(self) -> Optional[datetime]:
        return self._timestamp

    @property
    def timestamp_millis(self) -> Optional[int]:
        if self._timestamp is None:
            return None
        return round(self._timestamp.timestamp() * 1000)

    @property
    def user(self) -> Optional[str]:
        return self._user

    @property
    def trackback_url(self) -> Optional[str]:
        return self._trackback_url

    @property
    def revision_comment(self) -> Optional[str]:
        return self._revision_comment

    @property
    def data(self) -> Dict[str, Optional[str]]:
        return dict(self._data)

    @property
    def package_location(self) -> Optional[str]:
        return self._data.get(PACKAGE_LOCATION)

    @property
    def is_absent(self) -> bool:
        return self._revision is None

    def to_dict(self) -> Dict[str, Any]:
        """Returns the revision as a JSON-serialisable dictionary."""
        return {
            "revision": self._revision,
            "timestamp": self._timestamp.isoformat() if self._timestamp else None,
            "user": self._user,
            "trackback_url": self._trackback_url,
            "revision_comment": self._revision_comment,
            "data": self.data,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageRevision):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"PackageRevision(revision={self._revision!r}, timestamp={self._timestamp!r})"


def timestamp_from_seconds(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class QueryStatus(Enum):
    SUCCESS = "success"
    PROCESS_FAILURE = "process_failure"
    AMBIGUOUS_RESULT = "ambiguous_result"


class QueryResult:
    """Outcome of one query: a revision, or the error that prevented it."""

    def __init__(self, status: QueryStatus, revision: Optional[PackageRevision] = None, error: Optional[RepoQueryError] = None) -> None:
        self.status = status
        self.revision = revision
        self.error = error

    @classmethod
    def success(cls, revision: PackageRevision) -> "QueryResult":
        return cls(QueryStatus.SUCCESS, revision=revision)

    @classmethod
    def failure(cls, status: QueryStatus, error: RepoQueryError) -> "QueryResult":
        return cls(status, error=error)

    @property
    def ok(self) -> bool:
        return self.status is QueryStatus.SUCCESS

    def unwrap(self) -> PackageRevision:
        """Returns the revision, raising the stored error if there is none.

        Raises:
            RepoQueryError: The error recorded for a failed query.
        """
        if self.error is not None:
            raise self.error
        return self.revision

    def __repr__(self) -> str:
        return f"QueryResult(status={self.status.value}, revision={self.revision!r}, error={self.error!r})"
