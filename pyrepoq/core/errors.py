"""Exceptions raised by the query pipeline.

All of them derive from `RepoQueryError`, so a caller that only wants to know
whether a lookup failed can catch that single class.
"""

from typing import List, Optional


class RepoQueryError(Exception):
    """Base class for every failure of a repository query."""


class ProcessFailureError(RepoQueryError):
    """The `repoquery` process exited with a non-zero status.

    Attributes:
        repo_url (str): The repository location that was queried.
        package_spec (str): The package specification that was queried.
        stderr (str): The text the process wrote to stderr.
    """

    def __init__(self, repo_url: str, package_spec: str, stderr: str) -> None:
        self.repo_url = repo_url
        self.package_spec = package_spec
        self.stderr = stderr
        super().__init__(
            f"Error while querying repository with path '{repo_url}' and package spec '{package_spec}'. "
            f"Error Message: {stderr}"
        )


class AmbiguousResultError(RepoQueryError):
    """The package specification matched more than one file.

    Attributes:
        package_spec (str): The package specification that was queried.
        file_names (List[str]): File name of every match, in the
            order `repoquery` printed them.
    """

    def __init__(self, package_spec: str, file_names: List[str]) -> None:
        self.package_spec = package_spec
        self.file_names = list(file_names)
        super().__init__(
            f"Given Package Spec ({package_spec}) resolves to more than one file on the repository: "
            f"{', '.join(str(name) for name in self.file_names)}"
        )


class MalformedOutputError(RepoQueryError):
    """A line printed by `repoquery` does not follow the query format."""

    def __init__(self, line: Optional[str], reason: str) -> None:
        self.line = line
        super().__init__(f"Unexpected repoquery output ({reason}): {line!r}")
