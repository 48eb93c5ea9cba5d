"""Core components for the pyrepoq application.

This package contains the query pipeline: the value types, the `repoquery`
command builder and executor, the output parser, the worker pool used to
run many queries at once, and the configuration manager.
"""
