"""Clears the metadata cache `repoquery` keeps between runs.

yum tools running as an unprivileged user cache repository metadata under
`/var/tmp/yum-<user>-<random>/`. Stale metadata there makes a query see an
old view of a repository, so callers wipe it before and after a batch of
queries.
"""
import getpass
import logging
import shutil
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CACHE_ROOT = Path("/var/tmp")


class RepoqueryCacheCleaner:
    """Removes the per-user yum cache directories.

    Cleanup is idempotent and may run while other threads are querying:
    directories that vanish mid-way are ignored.

    Attributes:
        cache_root (Path): The directory holding the `yum-<user>-*` caches.
        username (str): The user whose caches are removed.
    """

    def __init__(self, cache_root: Optional[Path] = None, username: Optional[str] = None):
        self.cache_root = Path(cache_root) if cache_root else DEFAULT_CACHE_ROOT
        self.username = username or getpass.getuser()

    def cache_dirs(self) -> List[Path]:
        """Lists the cache directories that currently exist."""
        try:
            return [p for p in self.cache_root.glob(f"yum-{self.username}-*") if p.is_dir()]
        except OSError:
            # An unreadable cache root has nothing we could remove anyway.
            return []

    def perform_cleanup(self) -> None:
        """Deletes every cache directory of the configured user."""
        for cache_dir in self.cache_dirs():
            logger.debug(f"Removing repoquery cache {cache_dir}")
            shutil.rmtree(cache_dir, ignore_errors=True)
