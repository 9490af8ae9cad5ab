"""Fetching DNA sources from git repositories and local directories."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import SourceError
from .manifest import load_validated_manifest
from .models import Manifest, ProjectSource, SourceType
from .paths import resolve_within_root

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT = 300.0
GIT_TIMEOUT_ENV = "DNASPEC_GIT_TIMEOUT"


@dataclass
class FetchedSource:
    """A manifest snapshot together with a readable copy of the source files.

    Call :meth:`release` (or use the instance as a context manager) once the
    files have been copied; for git sources this removes the clone.
    """

    manifest: Manifest
    content_root: Path
    source_type: SourceType
    url: str | None = None
    path: str | None = None
    ref: str | None = None
    commit: str | None = None
    _cleanup: Callable[[], None] | None = field(default=None, repr=False)

    def release(self) -> None:
        if self._cleanup is not None:
            cleanup, self._cleanup = self._cleanup, None
            cleanup()

    def __enter__(self) -> FetchedSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


def git_timeout() -> float:
    """Seconds a single git command may run before it is aborted."""
    raw = os.environ.get(GIT_TIMEOUT_ENV)
    if not raw:
        return DEFAULT_GIT_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", GIT_TIMEOUT_ENV, raw)
        return DEFAULT_GIT_TIMEOUT
    return value if value > 0 else DEFAULT_GIT_TIMEOUT


def validate_git_url(url: str) -> None:
    """Accept only HTTPS and SSH (``git@``) URLs.

    Raises:
        SourceError: For empty URLs, ``git://`` and any other scheme
    """
    if not url:
        msg = "git URL cannot be empty"
        raise SourceError(msg)
    if url.startswith("git://"):
        msg = "git:// protocol is not allowed (insecure)"
        raise SourceError(msg, details={"url": url})
    if not url.startswith(("https://", "git@")):
        msg = "only HTTPS and SSH URLs are supported (https:// or git@)"
        raise SourceError(msg, details={"url": url})


def _run_git(args: list[str], timeout: float) -> str:
    """Run ``git`` with ``args`` and return its stdout."""
    cp = subprocess.run(
        ["git", *args],
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        timeout=timeout,
    )
    return cp.stdout


def clone_repo(url: str, ref: str | None, dest: Path) -> str:
    """Shallow-clone ``url`` into ``dest`` and return the checked out commit.

    Raises:
        SourceError: If the URL is rejected, git is missing, or git fails
    """
    validate_git_url(url)
    timeout = git_timeout()

    args = ["clone", "--depth=1", "--single-branch"]
    if ref:
        args += ["--branch", ref]
    args += [url, str(dest)]

    try:
        _run_git(args, timeout)
        commit = _run_git(["-C", str(dest), "rev-parse", "HEAD"], timeout).strip()
    except FileNotFoundError as e:
        msg = "git not available"
        raise SourceError(msg) from e
    except subprocess.TimeoutExpired as e:
        msg = f"git clone timed out after {timeout:g} seconds"
        raise SourceError(msg, details={"url": url}) from e
    except subprocess.CalledProcessError as e:
        output = (e.stderr or "").strip()
        msg = f"git clone failed: {output or e}"
        raise SourceError(msg, details={"url": url, "ref": ref}) from e

    logger.debug("Cloned %s at %s", url, commit)
    return commit


def fetch_git_source(url: str, ref: str | None = None) -> FetchedSource:
    """Clone a git source into a temporary directory and load its manifest.

    Raises:
        SourceError: If cloning fails
        ManifestError: If the manifest is missing, unreadable or invalid
    """
    temp_dir = Path(tempfile.mkdtemp(prefix="dnaspec-"))

    def cleanup() -> None:
        shutil.rmtree(temp_dir, ignore_errors=True)

    try:
        commit = clone_repo(url, ref, temp_dir)
        manifest = load_validated_manifest(temp_dir)
    except BaseException:
        cleanup()
        raise

    return FetchedSource(
        manifest=manifest,
        content_root=temp_dir,
        source_type=SourceType.GIT_REPO,
        url=url,
        ref=ref,
        commit=commit,
        _cleanup=cleanup,
    )


def fetch_local_source(path: str | os.PathLike[str]) -> FetchedSource:
    """Load the manifest of a local source directory in place.

    Raises:
        SourceError: If the path is missing or not a directory
        ManifestError: If the manifest is missing, unreadable or invalid
    """
    directory = Path(path)
    if not directory.exists():
        msg = f"path does not exist: {path}"
        raise SourceError(msg, details={"path": str(path)})
    if not directory.is_dir():
        msg = f"path is not a directory: {path}"
        raise SourceError(msg, details={"path": str(path)})

    absolute = directory.resolve()
    manifest = load_validated_manifest(absolute)
    return FetchedSource(
        manifest=manifest,
        content_root=absolute,
        source_type=SourceType.LOCAL_PATH,
        path=str(absolute),
    )


def fetch_for_record(
    record: ProjectSource,
    project_root: str | os.PathLike[str],
) -> FetchedSource:
    """Fetch the current state of a recorded source.

    Relative local paths must stay inside the project root. Absolute local
    paths predate relative storage and are used as-is with a warning.

    Raises:
        SourceError: If the record lacks its locator or fetching fails
        ConfinementError: If a relative local path escapes the project root
        ManifestError: If the manifest is missing, unreadable or invalid
    """
    if record.source_type == SourceType.GIT_REPO:
        if not record.url:
            msg = f"source {record.name} has no url"
            raise SourceError(msg, details={"source": record.name})
        return fetch_git_source(record.url, record.ref)

    if not record.path:
        msg = f"source {record.name} has no path"
        raise SourceError(msg, details={"source": record.name})

    if os.path.isabs(record.path):
        logger.warning(
            "Source %s uses absolute path %s; run 'dnaspec validate' for details",
            record.name,
            record.path,
        )
        return fetch_local_source(record.path)

    return fetch_local_source(resolve_within_root(project_root, record.path))
