"""pyrepoq: package revision lookups against yum repositories.

This package wraps the `repoquery` tool to resolve a package specification
on an ad hoc repository and turn the answer into a structured revision
record.
"""

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = ["__version__", "__license__"]
