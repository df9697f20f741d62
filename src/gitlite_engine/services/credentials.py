"""Credential resolution for fetch, pull and push.

Providers are queried in a fixed priority order and the first one that can
authenticate the remote URL wins:

1. git credential helper (``git credential fill``), HTTPS only
2. SSH agent, SSH only
3. Credentials supplied by the caller (username/password or key file)
4. Default: whatever git and ssh do on their own, without prompting

A provider never prompts. Every exchange runs with terminal prompts
disabled so a missing credential fails fast as an Auth error. Passwords and
passphrases reach git and ssh through an askpass program reading the
exchange environment; remote URLs and repository config are left untouched.
"""

from __future__ import annotations

import atexit
import logging
import os
import re
import shlex
import shutil
import stat
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Protocol
from urllib.parse import urlsplit

import git
from git.exc import GitCommandError
from pydantic import SecretStr

from gitlite_engine.config import Settings
from gitlite_engine.config import settings as default_settings
from gitlite_engine.domain.enums import TransportKind
from gitlite_engine.domain.models import Credentials, TransportAuth

logger = logging.getLogger(__name__)

# user@host:path (scp-like SSH syntax); a single letter before ":" is a drive
_SCP_LIKE = re.compile(r"^(?:(?P<user>[^@/]+)@)?(?P<host>[^/:]{2,}):(?!//)")

SSH_BATCH_COMMAND = "ssh -o BatchMode=yes"
ASKPASS_USERNAME_ENV = "GITLITE_ASKPASS_USERNAME"
ASKPASS_SECRET_ENV = "GITLITE_ASKPASS_SECRET"


# ============================================================
# URL helpers
# ============================================================


def transport_kind(url: str | None) -> TransportKind:
    """Transport family of a remote URL."""
    if not url:
        return TransportKind.LOCAL
    lowered = url.lower()
    if lowered.startswith(("https://", "http://")):
        return TransportKind.HTTPS
    if lowered.startswith(("ssh://", "git+ssh://", "ssh+git://")):
        return TransportKind.SSH
    if "://" not in url and _SCP_LIKE.match(url):
        return TransportKind.SSH
    return TransportKind.LOCAL


def username_from_url(url: str | None) -> str | None:
    """User embedded in an SSH or HTTPS URL, if any."""
    if not url:
        return None
    if "://" in url:
        return urlsplit(url).username or None
    match = _SCP_LIKE.match(url)
    return match.group("user") if match else None


def redact_url_credentials(text: str) -> str:
    """Mask userinfo in any URL appearing in ``text``."""
    return re.sub(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^/@\s]+@", r"\g<scheme>***@", text)


def detect_ssh_keys(config: Settings | None = None) -> list[Path]:
    """Private keys present under the SSH directory, in probing order."""
    cfg = config or default_settings
    return [cfg.ssh_dir / name for name in cfg.ssh_key_names if (cfg.ssh_dir / name).is_file()]


@lru_cache(maxsize=1)
def askpass_script() -> Path:
    """Askpass program shared by git and ssh.

    It holds no secret itself: it answers username prompts from
    ``ASKPASS_USERNAME_ENV`` and every other prompt (password, key
    passphrase) from ``ASKPASS_SECRET_ENV``.
    """
    directory = Path(tempfile.mkdtemp(prefix="gitlite-askpass-"))
    atexit.register(shutil.rmtree, directory, True)
    script = directory / "askpass.sh"
    script.write_text(
        "#!/bin/sh\n"
        'case "$1" in\n'
        f'    Username*) printf "%s\\n" "${ASKPASS_USERNAME_ENV}" ;;\n'
        f'    *) printf "%s\\n" "${ASKPASS_SECRET_ENV}" ;;\n'
        "esac\n"
    )
    script.chmod(stat.S_IRWXU)
    return script


def exchange_env(auth: TransportAuth) -> dict[str, str]:
    """Process environment for one authenticated transport exchange."""
    env = {"GIT_TERMINAL_PROMPT": "0", **auth.env}
    if auth.transport == TransportKind.HTTPS and auth.secret is not None:
        env["GIT_ASKPASS"] = str(askpass_script())
    if auth.username:
        env[ASKPASS_USERNAME_ENV] = auth.username
    if auth.secret is not None:
        env[ASKPASS_SECRET_ENV] = auth.secret.get_secret_value()
    return env


# ============================================================
# Providers
# ============================================================


@dataclass(frozen=True)
class CredentialRequest:
    """Everything a provider may look at. Providers must not mutate it."""

    url: str
    transport: TransportKind
    credentials: Credentials
    repo: git.Repo | None = None
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)

    @property
    def username_hint(self) -> str | None:
        return username_from_url(self.url) or self.credentials.username_hint


class CredentialProvider(Protocol):
    name: str

    def provide(self, request: CredentialRequest) -> TransportAuth | None: ...


class CredentialHelperProvider:
    """Ask the configured git credential helper for HTTPS credentials."""

    name = "credential-helper"

    def provide(self, request: CredentialRequest) -> TransportAuth | None:
        if request.transport != TransportKind.HTTPS or request.repo is None:
            return None

        parts = urlsplit(request.url)
        lines = [f"protocol={parts.scheme}", f"host={parts.netloc.rpartition('@')[2]}"]
        if parts.path.strip("/"):
            lines.append(f"path={parts.path.lstrip('/')}")
        if request.username_hint:
            lines.append(f"username={request.username_hint}")
        query = ("\n".join(lines) + "\n\n").encode()

        with tempfile.TemporaryFile() as stdin:
            stdin.write(query)
            stdin.seek(0)
            try:
                output = request.repo.git.execute(
                    [git.Git.GIT_PYTHON_GIT_EXECUTABLE or "git", "credential", "fill"],
                    istream=stdin,
                    env={"GIT_TERMINAL_PROMPT": "0", "GIT_ASKPASS": ""},
                )
            except GitCommandError:
                logger.debug("No credential helper answered")
                return None

        values = dict(line.split("=", 1) for line in str(output).splitlines() if "=" in line)
        username, password = values.get("username"), values.get("password")
        if not username or not password:
            return None
        return TransportAuth(
            provider=self.name,
            transport=request.transport,
            username=username,
            secret=SecretStr(password),
        )


class SshAgentProvider:
    """Use a running ssh-agent for SSH remotes."""

    name = "ssh-agent"

    def provide(self, request: CredentialRequest) -> TransportAuth | None:
        if request.transport != TransportKind.SSH or not request.environ.get("SSH_AUTH_SOCK"):
            return None
        command = SSH_BATCH_COMMAND
        if username_from_url(request.url) is None:
            # Hosting services expect "git" when the URL names no user
            command += f" -l {shlex.quote(request.credentials.username_hint or 'git')}"
        return TransportAuth(
            provider=self.name,
            transport=request.transport,
            env={"GIT_SSH_COMMAND": command},
        )


class ExplicitCredentialsProvider:
    """Credentials the caller passed in: HTTPS user/password or an SSH key file."""

    name = "explicit"

    def provide(self, request: CredentialRequest) -> TransportAuth | None:
        if request.transport == TransportKind.HTTPS:
            https = request.credentials.https
            password = https.password.get_secret_value()
            if not https.username or not password:
                return None
            return TransportAuth(
                provider=self.name,
                transport=request.transport,
                username=https.username,
                secret=SecretStr(password),
            )

        if request.transport == TransportKind.SSH:
            ssh = request.credentials.ssh
            if not ssh.key_path:
                return None
            key_path = Path(ssh.key_path).expanduser()
            if not key_path.is_file():
                logger.debug(f"SSH key {key_path} does not exist, skipping")
                return None

            command = f"ssh -i {shlex.quote(str(key_path))} -o IdentitiesOnly=yes"
            passphrase = ssh.passphrase.get_secret_value() if ssh.passphrase else ""
            if not passphrase:
                return TransportAuth(
                    provider=self.name,
                    transport=request.transport,
                    env={"GIT_SSH_COMMAND": f"{command} -o BatchMode=yes"},
                )
            return TransportAuth(
                provider=self.name,
                transport=request.transport,
                secret=SecretStr(passphrase),
                env={
                    "GIT_SSH_COMMAND": command,
                    "SSH_ASKPASS": str(askpass_script()),
                    "SSH_ASKPASS_REQUIRE": "force",
                    "DISPLAY": request.environ.get("DISPLAY", ":0"),
                },
            )

        return None


class DefaultCredentialsProvider:
    """Let git and ssh authenticate on their own, never prompting."""

    name = "default"

    def provide(self, request: CredentialRequest) -> TransportAuth | None:
        env: dict[str, str] = {}
        if request.transport == TransportKind.SSH:
            env["GIT_SSH_COMMAND"] = SSH_BATCH_COMMAND
        return TransportAuth(provider=self.name, transport=request.transport, env=env)


def default_providers() -> list[CredentialProvider]:
    return [
        CredentialHelperProvider(),
        SshAgentProvider(),
        ExplicitCredentialsProvider(),
        DefaultCredentialsProvider(),
    ]


# ============================================================
# Resolver
# ============================================================


class CredentialResolver:
    """Queries providers in priority order; the first usable answer wins."""

    def __init__(
        self,
        providers: Sequence[CredentialProvider] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.providers = list(providers) if providers is not None else default_providers()
        self.environ = environ

    def resolve(
        self,
        url: str | None,
        credentials: Credentials | None = None,
        repo: git.Repo | None = None,
    ) -> TransportAuth:
        kind = transport_kind(url)
        if not url or kind == TransportKind.LOCAL:
            return TransportAuth(provider="none", transport=kind)

        request = CredentialRequest(
            url=url,
            transport=kind,
            credentials=credentials or Credentials(),
            repo=repo,
            environ=self.environ if self.environ is not None else os.environ,
        )
        for provider in self.providers:
            auth = provider.provide(request)
            if auth is not None:
                logger.debug(f"Using {provider.name} credentials for {redact_url_credentials(url)}")
                return auth

        return TransportAuth(provider="none", transport=kind)
