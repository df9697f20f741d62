"""Pydantic domain models for gitlite engine."""

from pydantic import BaseModel, Field, SecretStr

from gitlite_engine.domain.enums import (
    DiffLineKind,
    FileStatusKind,
    HeadKind,
    MergeAnalysis,
    TransportKind,
)

# ============================================================
# History
# ============================================================


class Commit(BaseModel):
    """Commit as shown in history listings."""

    hash: str
    author: str
    message: str
    date: int = Field(..., description="Commit time in seconds since the epoch")
    parents: list[str] = Field(default_factory=list)

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


class DiffLine(BaseModel):
    """Single line inside a hunk."""

    kind: DiffLineKind
    content: str
    old_lineno: int | None = None
    new_lineno: int | None = None


class DiffHunk(BaseModel):
    """Contiguous block of changes with its context window."""

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    header: str = ""
    lines: list[DiffLine] = Field(default_factory=list)


class FileDiff(BaseModel):
    """All hunks touching one path."""

    path: str
    is_binary: bool = False
    hunks: list[DiffHunk] = Field(default_factory=list)

    @property
    def added_lines(self) -> int:
        return sum(1 for h in self.hunks for line in h.lines if line.kind == DiffLineKind.ADD)

    @property
    def removed_lines(self) -> int:
        return sum(1 for h in self.hunks for line in h.lines if line.kind == DiffLineKind.DELETE)


# ============================================================
# Working tree
# ============================================================


class FileStatus(BaseModel):
    """One pending change. A path may appear once staged and once unstaged."""

    path: str
    status: FileStatusKind
    is_staged: bool


# ============================================================
# Refs
# ============================================================


class HeadState(BaseModel):
    """Where HEAD points right now."""

    kind: HeadKind
    branch: str | None = None  # Short branch name, None when detached
    ref_name: str | None = None  # Full ref (refs/heads/<branch>), None when detached
    target: str | None = None  # Commit id, None when unborn

    @property
    def is_branch(self) -> bool:
        return self.kind == HeadKind.BRANCH


class BranchHead(BaseModel):
    """HEAD attached to a branch that has at least one commit."""

    branch: str
    ref_name: str
    target: str


class Branch(BaseModel):
    """Local or remote-tracking branch."""

    name: str
    is_current: bool = False
    is_remote: bool = False
    target_hash: str | None = None


# ============================================================
# Remotes and sync
# ============================================================


class RemoteInfo(BaseModel):
    """Configured remote."""

    name: str
    url: str | None = None


class SyncStatus(BaseModel):
    """Ahead/behind relationship of the current branch to its remote-tracking ref."""

    branch: str
    has_upstream: bool = False
    ahead: int = 0
    behind: int = 0


class PullTarget(BaseModel):
    """Branch captured before a pull, compared against the fetched target."""

    branch_ref_name: str
    head_oid: str

    @property
    def branch(self) -> str:
        return self.branch_ref_name.removeprefix("refs/heads/")


class PullResult(BaseModel):
    """Outcome of a fast-forward-only pull."""

    branch: str
    old_head: str
    new_head: str

    @property
    def updated(self) -> bool:
        return self.old_head != self.new_head


class MergeResult(BaseModel):
    """Outcome of merging a target into the current branch."""

    analysis: MergeAnalysis
    head: str
    merge_commit: str | None = None  # Set only when a merge commit was created


# ============================================================
# Credentials
# ============================================================


class HttpsCredentials(BaseModel):
    """Username/password (or token) supplied by the caller."""

    username: str = ""
    password: SecretStr = SecretStr("")


class SshCredentials(BaseModel):
    """Private key supplied by the caller."""

    key_path: str = ""
    passphrase: SecretStr | None = None


class Credentials(BaseModel):
    """Everything the caller knows about authenticating to a remote."""

    https: HttpsCredentials = Field(default_factory=HttpsCredentials)
    ssh: SshCredentials = Field(default_factory=SshCredentials)
    username_hint: str | None = None


class TransportAuth(BaseModel):
    """How one transport exchange authenticates.

    ``env`` is added to the git process environment. ``username`` and
    ``secret`` (an HTTPS password or an SSH key passphrase) are handed to the
    askpass program of that one exchange, never written to the repository.
    """

    provider: str
    transport: TransportKind
    username: str | None = None
    secret: SecretStr | None = None
    env: dict[str, str] = Field(default_factory=dict)


# ============================================================
# Stash and config
# ============================================================


class StashEntry(BaseModel):
    """Entry of the stash stack. Index 0 is the most recent."""

    index: int
    message: str
    author: str = "unknown"
    date: int = 0


class GitUserConfig(BaseModel):
    """Repository-local commit identity."""

    name: str | None = None
    email: str | None = None
