from __future__ import annotations

from pathlib import Path

from slider.errors import ConfigurationError

DEFAULT_CREDENTIALS_PATH = Path.home() / ".githubcreds"


def load_github_token(path: Path | None = None) -> str:
    """Read the GitHub user token stored in the credentials file."""
    token_path = Path(path or DEFAULT_CREDENTIALS_PATH).expanduser()
    message = f"You must download a Github user token and store it in {token_path}."
    if not token_path.is_file():
        raise ConfigurationError(message)
    token = token_path.read_text(encoding="utf-8").strip()
    if not token:
        raise ConfigurationError(message)
    return token
