"""Utility modules for the pyrepoq application.

This package contains the collaborators that touch the outside world:
running external processes and clearing the on-disk repoquery cache.
"""
