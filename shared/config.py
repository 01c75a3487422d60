"""Application configuration loaded from environment variables."""

from __future__ import annotations

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    """Application settings read from environment variables."""

    GITHUB_TOKEN: str = Field(
        default="",
        description="Token used for GitHub Contents API calls",
        validation_alias=AliasChoices("GITHUB_TOKEN", "GH_TOKEN"),
    )
    GITHUB_OWNER: str = Field(
        default="ambigenius", description="Owner of the content repository"
    )
    GITHUB_REPO: str = Field(
        default="mdvbackend", description="Name of the content repository"
    )
    GITHUB_BRANCH: str = Field(
        default="",
        description="Branch to read and commit to; empty uses the default branch",
    )
    GITHUB_API_URL: str = Field(
        default="https://api.github.com", description="GitHub REST API base URL"
    )
    COMMITTER_NAME: str = Field(
        default="Site Bot", description="Committer name recorded on writes"
    )
    COMMITTER_EMAIL: str = Field(
        default="bot@example.com", description="Committer email recorded on writes"
    )
    UPSTREAM_TIMEOUT_SEC: float = Field(
        default=30.0, description="Timeout applied to GitHub requests"
    )
    ALLOWED_ORIGIN: str = Field(
        default="http://localhost:3000",
        description="Origin allowed to call the proxy from a browser",
    )
    HOST: str = Field(default="0.0.0.0", description="Proxy listen address")
    PORT: int = Field(default=3001, description="Proxy listen port")
    API_BASE_URL: str = Field(
        default="http://localhost:3001",
        description="Base URL of the proxy (used by the editor and reader)",
    )
    ADMIN_API_TOKEN: str = Field(
        default="",
        description="Bearer token required for write routes when set",
        validation_alias=AliasChoices("ADMIN_API_TOKEN", "API_AUTH_TOKEN"),
    )
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Defaults for the About page social links
    INSTAGRAM_URL: str = Field(
        default="https://instagram.com/maevedevere",
        description="Default Instagram link stored on the About post",
    )
    SUBSTACK_URL: str = Field(
        default="https://substack.com/@maevedevere",
        description="Default Substack link stored on the About post",
    )

    @property
    def repo_html_url(self) -> str:
        return f"https://github.com/{self.GITHUB_OWNER}/{self.GITHUB_REPO}"


settings = Settings()

__all__ = ["Settings", "settings"]
