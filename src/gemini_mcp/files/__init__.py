"""File providers: local sandboxed reads and concurrent GitHub fetches."""

from .github import (
    FetchBatch,
    FetchError,
    GitHubFetcher,
    parse_github_repo,
    validate_repo_paths,
)
from .local import LocalFileProvider
from .mime import get_mime_type

__all__ = [
    "FetchBatch",
    "FetchError",
    "GitHubFetcher",
    "LocalFileProvider",
    "get_mime_type",
    "parse_github_repo",
    "validate_repo_paths",
]
