"""Configuration for the gitlite engine."""

from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from the current working directory into os.environ
load_dotenv()


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GITLITE_",
        extra="ignore",  # Ignore unrelated env vars sharing the .env file
    )

    # Logging
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # History
    diff_context_lines: int = Field(default=3, description="Context lines around each hunk")
    default_log_limit: int = Field(default=100, description="Commits returned when no limit given")

    # Remotes
    default_remote: str = Field(
        default="origin", description="Remote used when a blank remote name is supplied"
    )
    network_timeout_seconds: float | None = Field(
        default=None,
        description="Kill fetch/push after this many seconds. None waits for the transport",
    )

    # SSH
    ssh_dir: Path = Field(default_factory=lambda: Path.home() / ".ssh")
    ssh_key_names: list[str] = Field(
        default_factory=lambda: ["id_ed25519", "id_rsa", "id_ecdsa"],
        description="Private key file names probed by SSH key discovery, in priority order",
    )

    # Stash
    stash_default_message: str = Field(default="WIP")

    # Git executable and identity
    git_executable: str | None = Field(
        default=None, description="Path to the git binary. Defaults to git on PATH"
    )
    author_name: str | None = Field(
        default=None,
        description="Identity for commits created by the engine. Falls back to git config",
    )
    author_email: str | None = Field(default=None)

    def model_post_init(self, __context: object) -> None:
        """Normalize derived values after initialization."""
        self.ssh_dir = self.ssh_dir.expanduser()
        if self.diff_context_lines < 0:
            raise ValueError("diff_context_lines must be >= 0")
        if not self.default_remote.strip():
            self.default_remote = "origin"


settings = Settings()
