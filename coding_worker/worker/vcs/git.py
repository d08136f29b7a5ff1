"""Git primitives used to materialize and post-process workspaces.

Every command runs through ``asyncio.create_subprocess_exec`` with terminal
prompts disabled, so a missing credential fails fast instead of hanging the
job.  Failures are classified here, where git's stderr is available:

- unknown repository        -> ``RepositoryNotFoundError``
- missing remote branch     -> ``BranchNotFoundError``
- rejected credentials      -> ``AuthError``
- anything else             -> ``GitCommandError`` (internal)

Access tokens are only ever injected into clone URLs for known hosts and are
redacted from every error message.
"""

from __future__ import annotations

import asyncio
import os
import re
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from coding_worker.worker.errors import AuthError, RepositoryNotFoundError, WorkerError

TOKEN_HOSTS = ("https://github.com/",)
"""URL prefixes that accept an access token as userinfo."""

_REPO_NAME_RE = re.compile(r"/([^/]+?)(?:\.git)?/?$")

_BRANCH_MISSING_MARKERS = ("remote branch", "couldn't find remote ref", "did not match any file(s) known to git")
_NOT_FOUND_RE = re.compile(
    r"repository not found"
    r"|does not appear to be a git repository"
    r"|repository '[^']*' (?:does not exist|not found)"
)
_AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "permission denied",
    "access denied",
    "http basic: access denied",
    "the requested url returned error: 403",
    "the requested url returned error: 401",
)


class GitCommandError(WorkerError):
    """A git command exited non-zero for an unclassified reason."""

    def __init__(self, message: str, *, returncode: int, stderr: str) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class BranchNotFoundError(RepositoryNotFoundError):
    """The requested branch does not exist on the remote."""

    def __init__(self, branch: str, message: str) -> None:
        super().__init__(message)
        self.branch = branch


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True)
class PullResult:
    """Outcome of ``GitClient.pull_repository``."""

    target_path: Path
    was_cloned: bool
    branch: str


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def extract_repo_name(url: str) -> str:
    """``https://github.com/org/repo.git`` -> ``repo``."""
    match = _REPO_NAME_RE.search(url.strip())
    if not match:
        msg = f"Invalid repository URL: {url}"
        raise RepositoryNotFoundError(msg)
    return match.group(1)


def inject_token(url: str, token: str | None) -> str:
    """Embed *token* as URL userinfo when the host is a known token host."""
    if not token:
        return url
    for host in TOKEN_HOSTS:
        if url.startswith(host):
            scheme, rest = host.split("://", 1)
            return f"{scheme}://{token}@{rest}{url[len(host) :]}"
    return url


def _redact(text: str, secrets: tuple[str, ...]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GitClient:
    """Async wrapper around the ``git`` executable."""

    def __init__(
        self,
        *,
        binary: str = "git",
        author_name: str = "Coding Worker",
        author_email: str = "coding-worker@localhost",
    ) -> None:
        self._binary = binary
        self._author_name = author_name
        self._author_email = author_email

    # -- Plumbing --------------------------------------------------------------

    async def _run(
        self,
        *args: str,
        cwd: Path | None = None,
        check: bool = True,
        secrets: tuple[str, ...] = (),
        branch: str | None = None,
    ) -> CommandResult:
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        process = await asyncio.create_subprocess_exec(
            self._binary,
            *args,
            cwd=str(cwd) if cwd is not None else None,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout_bytes, stderr_bytes = await process.communicate()
        result = CommandResult(
            args=tuple(args),
            returncode=int(process.returncode or 0),
            stdout=stdout_bytes.decode(errors="replace"),
            stderr=stderr_bytes.decode(errors="replace"),
        )
        if check and result.returncode != 0:
            raise _classify_failure(result, secrets=secrets, branch=branch)
        return result

    # -- Primitives ------------------------------------------------------------

    async def clone(
        self,
        url: str,
        target: Path,
        branch: str | None = None,
        *,
        access_token: str | None = None,
    ) -> None:
        clone_url = inject_token(url, access_token)
        args = ["clone"]
        if branch:
            args += ["--branch", branch]
        args += [clone_url, str(target)]
        target.parent.mkdir(parents=True, exist_ok=True)
        await self._run(*args, secrets=(access_token or "",), branch=branch)

    async def pull(self, path: Path, branch: str | None = None) -> str:
        """Fetch and fast-forward *path*, switching to *branch* first if needed.

        Returns the branch that was pulled.
        """
        current = await self.current_branch(path)
        await self._run("fetch", "origin", cwd=path)
        if branch and branch != current:
            await self._run("checkout", branch, cwd=path, branch=branch)
            current = branch
        await self._run("pull", "origin", current, cwd=path, branch=current)
        return current

    async def status(self, path: Path) -> str:
        return (await self._run("status", "--short", "--branch", cwd=path)).stdout

    async def diff(self, path: Path) -> str:
        result = await self._run("diff", "HEAD", cwd=path, check=False)
        if result.returncode != 0:
            # No HEAD yet (empty repository): fall back to the index diff.
            result = await self._run("diff", cwd=path)
        return result.stdout

    async def has_changes(self, path: Path) -> bool:
        result = await self._run("status", "--porcelain", cwd=path)
        return bool(result.stdout.strip())

    async def commit_all(self, path: Path, message: str) -> str:
        """Stage everything, commit, and return the new commit hash."""
        await self._run("add", "-A", cwd=path)
        await self._run(
            "-c",
            f"user.name={self._author_name}",
            "-c",
            f"user.email={self._author_email}",
            "commit",
            "-m",
            message,
            cwd=path,
        )
        return (await self._run("rev-parse", "HEAD", cwd=path)).stdout.strip()

    async def branch_exists(self, path: Path, name: str) -> bool:
        for ref in (f"refs/heads/{name}", f"refs/remotes/origin/{name}"):
            result = await self._run("rev-parse", "--verify", "--quiet", ref, cwd=path, check=False)
            if result.returncode == 0:
                return True
        return False

    async def create_branch(self, path: Path, name: str) -> None:
        await self._run("checkout", "-b", name, cwd=path)

    async def current_branch(self, path: Path) -> str:
        result = await self._run("rev-parse", "--abbrev-ref", "HEAD", cwd=path, check=False)
        branch = result.stdout.strip()
        if result.returncode != 0 or not branch or branch == "HEAD":
            # Unborn branch in a fresh repository.
            result = await self._run("symbolic-ref", "--short", "HEAD", cwd=path)
            branch = result.stdout.strip()
        return branch

    @staticmethod
    def is_repository(path: Path) -> bool:
        return (path / ".git").exists()

    # -- Composite -------------------------------------------------------------

    async def pull_repository(
        self,
        url: str,
        workspace_root: Path,
        *,
        branch: str | None = None,
        directory: str | None = None,
        access_token: str | None = None,
    ) -> PullResult:
        """Clone *url* under *workspace_root*, or update an existing clone.

        The clone lands in ``workspace_root / (directory or repo name)``.
        """
        target = workspace_root / (directory or extract_repo_name(url))

        if self.is_repository(target):
            logger.info("Repository already present at {}, pulling", target)
            resolved = await self.pull(target, branch)
            return PullResult(target_path=target, was_cloned=False, branch=resolved)

        logger.info("Cloning {} into {} (branch={})", url, target, branch or "<default>")
        await self.clone(url, target, branch, access_token=access_token)
        resolved = branch or await self.current_branch(target)
        return PullResult(target_path=target, was_cloned=True, branch=resolved)


def _classify_failure(result: CommandResult, *, secrets: tuple[str, ...], branch: str | None) -> WorkerError:
    stderr = _redact(result.stderr.strip(), secrets)
    command = _redact(" ".join(result.args), secrets)
    message = f"git {command} failed ({result.returncode}): {stderr}"
    lowered = stderr.lower()

    if branch and any(marker in lowered for marker in _BRANCH_MISSING_MARKERS):
        return BranchNotFoundError(branch, message)
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthError(message)
    if _NOT_FOUND_RE.search(lowered):
        return RepositoryNotFoundError(message)
    return GitCommandError(message, returncode=result.returncode, stderr=stderr)
