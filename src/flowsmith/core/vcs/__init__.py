"""Version-control provider clients."""

from src.flowsmith.core.vcs.base import AccountInfo, PushRequest, PushResult, RepoRef, VcsClient
from src.flowsmith.core.vcs.github import GitHubClient

__all__ = [
    "AccountInfo",
    "GitHubClient",
    "PushRequest",
    "PushResult",
    "RepoRef",
    "VcsClient",
]
