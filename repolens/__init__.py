"""RepoLens static analysis core."""

__version__ = "0.3.0"
