"""Builds and runs the `repoquery` invocation for a single package lookup.

A `RepoQueryCommand` is created per lookup. It:
1.  Builds the argument vector, pointing `repoquery` at an ad hoc
    repository through `--repofrompath`.
2.  Builds the child environment (`HOME` only).
3.  Runs the process and checks its exit status.
4.  Parses stdout and enforces that the package spec resolved to at most one file.

Nothing is shared between commands, so any number of them may run on
different threads at the same time.
"""

import logging
import os
import tempfile
from typing import Dict, List, Optional

from .errors import AmbiguousResultError, ProcessFailureError
from .models import PackageRevision, QueryResult, QueryStatus, RepoQueryParams
from .parser import QUERY_FORMAT, parse_output
from ..utils.process import ProcessRunner

# Initialize a logger for this module.
logger = logging.getLogger(__name__)

REPOQUERY = "repoquery"


class RepoQueryCommand:
    """One `repoquery` lookup of a package spec on a repository.

    Attributes:
        params (RepoQueryParams): Repository id, location and package spec.
        process_runner (ProcessRunner): Runs the external process.
    """

    def __init__(self, params: RepoQueryParams, process_runner: Optional[ProcessRunner] = None) -> None:
        self.params = params
        self.process_runner = process_runner or ProcessRunner()

    def repo_from_path(self, with_credentials: bool = True) -> str:
        location = self.params.repo_url.url_with_credentials() if with_credentials else self.params.repo_url.url
        return f"{self.params.repo_id},{location}"

    def build_command(self, with_credentials: bool = True) -> List[str]:
        """Returns the argument vector for `repoquery`.

        Args:
            with_credentials (bool): Embed the repository credentials in the
                `--repofrompath` location. Pass False for a copy that is safe
                to log.
        """
        return [
            REPOQUERY,
            f"--repofrompath={self.repo_from_path(with_credentials)}",
            f"--repoid={self.params.repo_id}",
            "-q",
            self.params.package_spec,
            "--qf",
            QUERY_FORMAT,
        ]

    def build_env(self) -> Dict[str, str]:
        """Returns the environment for the child process.

        `repoquery` writes cache and config files under `$HOME`; when the
        current process has no `HOME` the system temp directory is used.
        """
        home = self.get_system_env_variable("HOME")
        return {"HOME": home if home is not None else tempfile.gettempdir()}

    def get_system_env_variable(self, name: str) -> Optional[str]:
        return os.environ.get(name)

    def run(self) -> QueryResult:
        """Runs the lookup and reports the outcome as a `QueryResult`.

        Process failures and ambiguous specs are returned, not raised.

        Returns:
            QueryResult: The revision on success, otherwise the error.

        Raises:
            MalformedOutputError: If `repoquery` printed a line that does
                not follow the query format.
        """
        command = self.build_command()
        env = self.build_env()
        spec = self.params.package_spec
        logger.info(f"Querying repository {self.params.repo_id} for package spec: {spec}")
        logger.debug(f"Running command: {' '.join(self.build_command(with_credentials=False))}")

        process_output = self.process_runner.execute(command, env)

        if not process_output.is_zero_return_code():
            error = ProcessFailureError(self.params.repo_url.url, spec, process_output.stderr_text())
            logger.warning(f"repoquery exited with status {process_output.return_code} for {spec}")
            return QueryResult.failure(QueryStatus.PROCESS_FAILURE, error)

        lines = parse_output(process_output.stdout)
        if len(lines) > 1:
            error = AmbiguousResultError(spec, [line.file_name for line in lines])
            logger.warning(f"Package spec {spec} matched {len(lines)} files")
            return QueryResult.failure(QueryStatus.AMBIGUOUS_RESULT, error)

        if not lines:
            logger.info(f"Package spec {spec} matched nothing on repository {self.params.repo_id}")
            return QueryResult.success(PackageRevision.absent())

        return QueryResult.success(lines[0].to_revision())

    def execute(self) -> PackageRevision:
        """Runs the lookup and returns the revision.

        Raises:
            ProcessFailureError: If `repoquery` exits with a non-zero status.
            AmbiguousResultError: If the package spec matches more than one file.
            MalformedOutputError: If the output cannot be parsed.
        """
        return self.run().unwrap()
