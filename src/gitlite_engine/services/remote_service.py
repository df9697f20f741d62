"""Remote management."""

from __future__ import annotations

import logging

from git.exc import GitCommandError

from gitlite_engine.domain.enums import ErrorKind
from gitlite_engine.domain.models import RemoteInfo
from gitlite_engine.errors import OperationError, ValidationError
from gitlite_engine.observability.diagnostics import DiagnosticsSink, NullSink, safe_notice
from gitlite_engine.services.backend import GitBackend, command_output

logger = logging.getLogger(__name__)

_REFSPEC_NOTICE = "not updating non-default fetch refspec"


def _require_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Remote name cannot be empty", kind=ErrorKind.EMPTY_NAME)
    return cleaned


class RemoteService:
    """List, add, remove, rename and re-point remotes."""

    def __init__(self, backend: GitBackend, sink: DiagnosticsSink | None = None) -> None:
        self.backend = backend
        self.sink = sink or NullSink()

    def list_remotes(self) -> list[RemoteInfo]:
        return [
            RemoteInfo(name=remote.name, url=self.backend.remote_url(remote.name))
            for remote in self.backend.repo.remotes
        ]

    def add_remote(self, name: str, url: str) -> RemoteInfo:
        cleaned = _require_name(name)
        try:
            self.backend.repo.create_remote(cleaned, url)
        except GitCommandError as e:
            raise OperationError(f"Failed to add remote '{cleaned}': {command_output(e)}") from e
        logger.info(f"Added remote {cleaned}")
        return RemoteInfo(name=cleaned, url=url)

    def remove_remote(self, name: str) -> None:
        remote = self.backend.remote(_require_name(name))
        try:
            self.backend.repo.delete_remote(remote)
        except GitCommandError as e:
            raise OperationError(f"Failed to remove remote '{name}': {command_output(e)}") from e
        logger.info(f"Removed remote {remote.name}")

    def rename_remote(self, old_name: str, new_name: str) -> RemoteInfo:
        """Rename a remote and its remote-tracking branches.

        Fetch refspecs git could not rewrite are reported as a notice, not
        as a failure.
        """
        old = self.backend.remote(_require_name(old_name)).name
        new = _require_name(new_name)
        try:
            _, _, stderr = self.backend.repo.git.remote(
                "rename", old, new, with_extended_output=True
            )
        except GitCommandError as e:
            raise OperationError(f"Failed to rename remote '{old}': {command_output(e)}") from e

        for line in str(stderr).splitlines():
            if _REFSPEC_NOTICE in line.lower():
                logger.warning(f"Remote rename {old} -> {new}: {line.strip()}")
                safe_notice(
                    self.sink, "remote_rename_refspec_notice", old=old, new=new, notice=line.strip()
                )

        logger.info(f"Renamed remote {old} to {new}")
        return RemoteInfo(name=new, url=self.backend.remote_url(new))

    def set_remote_url(self, name: str, url: str) -> RemoteInfo:
        remote = self.backend.remote(_require_name(name))
        try:
            remote.set_url(url)
        except GitCommandError as e:
            raise OperationError(
                f"Failed to set URL of '{remote.name}': {command_output(e)}"
            ) from e
        return RemoteInfo(name=remote.name, url=url)
