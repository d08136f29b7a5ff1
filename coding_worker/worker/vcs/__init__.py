"""Version-control primitives (git over asyncio subprocesses)."""

from coding_worker.worker.vcs.git import (
    BranchNotFoundError,
    GitClient,
    GitCommandError,
    PullResult,
    extract_repo_name,
    inject_token,
)

__all__ = [
    "BranchNotFoundError",
    "GitClient",
    "GitCommandError",
    "PullResult",
    "extract_repo_name",
    "inject_token",
]
