"""Sync policy: fetch, fast-forward-only pull, push and ahead/behind status.

Pull never merges or rebases. When the fetched branch has diverged the
pull fails with NON_FAST_FORWARD and the caller decides whether to merge.
"""

from __future__ import annotations

import logging

from git import PushInfo
from git.exc import GitCommandError

from gitlite_engine.config import Settings
from gitlite_engine.domain.enums import ErrorKind
from gitlite_engine.domain.models import (
    Credentials,
    PullResult,
    PullTarget,
    SyncStatus,
    TransportAuth,
)
from gitlite_engine.errors import (
    ConflictError,
    GitliteError,
    NotFoundError,
    OperationError,
    PreconditionError,
    TransportError,
)
from gitlite_engine.observability.diagnostics import DiagnosticsSink, NullSink, safe_notice
from gitlite_engine.observability.metrics import TRANSPORT_FAILURES
from gitlite_engine.services.backend import GitBackend, command_output
from gitlite_engine.services.credentials import CredentialResolver, redact_url_credentials

logger = logging.getLogger(__name__)

_AUTH_PATTERNS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "permission denied (publickey",
    "permission denied, please try again",
    "invalid username or password",
    "terminal prompts disabled",
    "http basic: access denied",
    "returned error: 401",
    "returned error: 403",
    "incorrect passphrase",
)

_NETWORK_PATTERNS = (
    "could not resolve host",
    "connection refused",
    "connection timed out",
    "operation timed out",
    "network is unreachable",
    "network unreachable",
    "temporary failure",
    "unable to access",
    "ssh: connect to host",
    "connection reset",
    "connection closed by",
    "early eof",
    "the remote end hung up",
    "ssl certificate",
    "tls connection",
    "gnutls_handshake",
)

_NON_FAST_FORWARD_PATTERNS = ("non-fast-forward", "non fast forward", "fetch first")


def classify_transport_error(
    exc: GitCommandError, operation: str, *, fallback: ErrorKind
) -> GitliteError:
    """Turn a failed transport command into an Auth, Network or ``fallback`` error."""
    output = redact_url_credentials(command_output(exc))
    text = output.lower()

    if any(pattern in text for pattern in _AUTH_PATTERNS):
        error: GitliteError = TransportError(
            f"Authentication failed during {operation}: {output}",
            kind=ErrorKind.AUTH,
        )
    elif any(pattern in text for pattern in _NETWORK_PATTERNS):
        error = TransportError(
            f"Network error during {operation}: {output}", kind=ErrorKind.NETWORK
        )
    elif fallback == ErrorKind.REJECTED:
        error = ConflictError(f"{operation.capitalize()} rejected: {output}", kind=fallback)
    else:
        error = OperationError(f"{operation.capitalize()} failed: {output}", kind=fallback)

    if isinstance(error, TransportError):
        TRANSPORT_FAILURES.labels(operation=operation, kind=error.kind.value).inc()
    return error


class SyncService:
    """Remote synchronization for the current branch."""

    def __init__(
        self,
        backend: GitBackend,
        resolver: CredentialResolver | None = None,
        sink: DiagnosticsSink | None = None,
        config: Settings | None = None,
    ) -> None:
        self.backend = backend
        self.resolver = resolver or CredentialResolver()
        self.sink = sink or NullSink()
        self.settings = config or backend.settings

    def remote_name(self, remote: str | None) -> str:
        """Blank remote names mean the default remote."""
        name = (remote or "").strip()
        return name or self.settings.default_remote

    def _auth(self, remote: str, credentials: Credentials | None) -> TransportAuth:
        url = self.backend.remote_url(remote)
        return self.resolver.resolve(url, credentials, repo=self.backend.repo)

    # ============================================================
    # Pull
    # ============================================================

    def prepare_pull(self) -> PullTarget:
        """Guards that must hold before any network access.

        Raises:
            PreconditionError: DIRTY_WORKTREE (untracked files count),
                DETACHED, HEAD_UNBORN, in that order.
        """
        if not self.backend.is_clean():
            raise PreconditionError(
                "Working tree has uncommitted changes; commit or stash them before pulling",
                kind=ErrorKind.DIRTY_WORKTREE,
            )
        head = self.backend.require_branch_head()
        return PullTarget(branch_ref_name=head.ref_name, head_oid=head.target)

    def fetch(self, remote: str | None = None, credentials: Credentials | None = None) -> None:
        """Download refs and objects from a remote. Local branches are not touched.

        Raises:
            NotFoundError: REMOTE_NOT_FOUND.
            TransportError: AUTH or NETWORK.
            OperationError: Any other fetch failure.
        """
        name = self.remote_name(remote)
        auth = self._auth(name, credentials)
        logger.info(f"Fetching from {name} ({auth.provider} credentials)")

        with self.backend.authenticated(name, auth):
            try:
                self.backend.repo.git.fetch(
                    name, kill_after_timeout=self.settings.network_timeout_seconds
                )
            except GitCommandError as e:
                raise classify_transport_error(
                    e, "fetch", fallback=ErrorKind.OPERATION_FAILED
                ) from e

        safe_notice(self.sink, "fetch_completed", remote=name)

    def pull(self, remote: str | None = None, credentials: Credentials | None = None) -> PullResult:
        """Fetch, then fast-forward the current branch to its remote-tracking branch.

        Raises:
            PreconditionError: From ``prepare_pull``, before any network access.
            NotFoundError: If the remote has no branch of the same name.
            ConflictError: NON_FAST_FORWARD when the histories diverged.
        """
        target = self.prepare_pull()
        name = self.remote_name(remote)
        self.fetch(name, credentials)

        tracking_ref = f"refs/remotes/{name}/{target.branch}"
        fetched = self.backend.ref_target(tracking_ref)
        if fetched is None:
            raise NotFoundError(
                f"Remote branch '{name}/{target.branch}' not found",
                kind=ErrorKind.REFERENCE_NOT_FOUND,
                details={"remote": name, "branch": target.branch},
            )

        if fetched == target.head_oid:
            logger.info(f"{target.branch} is already up to date with {name}")
            return PullResult(branch=target.branch, old_head=target.head_oid, new_head=fetched)

        if not self.backend.is_ancestor(target.head_oid, fetched):
            raise ConflictError(
                f"Cannot fast-forward '{target.branch}' to {name}/{target.branch}: "
                "histories have diverged. Merge the remote branch explicitly",
                kind=ErrorKind.NON_FAST_FORWARD,
                details={"branch": target.branch, "local": target.head_oid, "remote": fetched},
            )

        self.backend.safe_switch_tree(target.head_oid, fetched)
        self.backend.update_ref(
            target.branch_ref_name, fetched, target.head_oid, reason="pull: Fast-forward"
        )

        logger.info(f"Fast-forwarded {target.branch} to {fetched[:8]}")
        safe_notice(
            self.sink,
            "pull_fast_forward",
            branch=target.branch,
            old=target.head_oid,
            new=fetched,
        )
        return PullResult(branch=target.branch, old_head=target.head_oid, new_head=fetched)

    # ============================================================
    # Push
    # ============================================================

    def push(self, remote: str | None = None, credentials: Credentials | None = None) -> str:
        """Push the current branch to the branch of the same name on the remote.

        Returns:
            The pushed branch name.

        Raises:
            ConflictError: NON_FAST_FORWARD when the remote advanced, REJECTED
                for any other refusal.
            TransportError: AUTH or NETWORK.
        """
        head = self.backend.require_branch_head()
        name = self.remote_name(remote)
        refspec = f"{head.ref_name}:{head.ref_name}"
        auth = self._auth(name, credentials)
        logger.info(f"Pushing {refspec} to {name} ({auth.provider} credentials)")

        with self.backend.authenticated(name, auth) as git_remote:
            try:
                results = git_remote.push(
                    refspec, kill_after_timeout=self.settings.network_timeout_seconds
                )
            except GitCommandError as e:
                raise classify_transport_error(e, "push", fallback=ErrorKind.REJECTED) from e

        self._check_push_results(results, head.branch)

        safe_notice(self.sink, "push_completed", remote=name, branch=head.branch)
        return head.branch

    def _check_push_results(self, results: list[PushInfo], branch: str) -> None:
        failed = PushInfo.REJECTED | PushInfo.REMOTE_REJECTED | PushInfo.REMOTE_FAILURE
        failed |= PushInfo.ERROR
        for info in results:
            if not info.flags & failed:
                continue
            summary = (info.summary or "").strip()
            if any(pattern in summary.lower() for pattern in _NON_FAST_FORWARD_PATTERNS):
                raise ConflictError(
                    f"Push of '{branch}' rejected: remote contains commits not present locally. "
                    "Pull first",
                    kind=ErrorKind.NON_FAST_FORWARD,
                    details={"branch": branch, "summary": summary},
                )
            raise ConflictError(
                f"Push of '{branch}' rejected: {summary or 'unknown reason'}",
                kind=ErrorKind.REJECTED,
                details={"branch": branch, "summary": summary},
            )

        error = getattr(results, "error", None)
        if not results and isinstance(error, GitCommandError):
            raise classify_transport_error(error, "push", fallback=ErrorKind.REJECTED)

    # ============================================================
    # Status
    # ============================================================

    def sync_status(self, remote: str | None = None) -> SyncStatus:
        """Ahead/behind counts of the current branch against its remote-tracking branch."""
        head = self.backend.require_branch_head()
        name = self.remote_name(remote)

        upstream = self.backend.ref_target(f"refs/remotes/{name}/{head.branch}")
        if upstream is None:
            return SyncStatus(branch=head.branch, has_upstream=False)

        ahead, behind = self.backend.ahead_behind(head.target, upstream)
        return SyncStatus(branch=head.branch, has_upstream=True, ahead=ahead, behind=behind)
