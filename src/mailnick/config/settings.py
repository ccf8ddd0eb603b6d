import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load .env once, globally
load_dotenv()

# Project root (independent of current working directory).
PROJECT_ROOT = Path(__file__).resolve().parents[3]

# Undo eligibility window for a ledger entry.
ACTION_EXPIRY_HOURS = 24
# Ledger rows older than this are physically deleted by the purge pass.
ACTION_RETENTION_DAYS = 2
MAX_EMAIL_RESULTS = 200

REQUIRED_GOOGLE_VARS = (
    ("GOOGLE_CLIENT_ID", "Google OAuth Client ID"),
    ("GOOGLE_CLIENT_SECRET", "Google OAuth Client Secret"),
    ("GOOGLE_REDIRECT_URI", "Google OAuth Redirect URI"),
)


def resolve_path(value: str) -> Path:
    """Relative paths are resolved against PROJECT_ROOT."""
    path = Path(value)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


def resolve_dir(env_key: str, default: str) -> Path:
    """
    Resolve a directory path from ENV and make sure it exists.
    """
    path = resolve_path(os.getenv(env_key, default))
    path.mkdir(parents=True, exist_ok=True)
    return path


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    database_path: Path
    google_client_id: str
    google_client_secret: str
    google_redirect_uri: str
    action_expiry_hours: int = ACTION_EXPIRY_HOURS
    action_retention_days: int = ACTION_RETENTION_DAYS
    max_email_results: int = MAX_EMAIL_RESULTS

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.database_path}"


def load_settings() -> Settings:
    data_dir = resolve_dir("MAILNICK_DATA_DIR", "data")
    database_path = resolve_path(os.getenv("DATABASE_PATH", str(data_dir / "emails.db")))
    database_path.parent.mkdir(parents=True, exist_ok=True)

    return Settings(
        data_dir=data_dir,
        database_path=database_path,
        google_client_id=os.getenv("GOOGLE_CLIENT_ID", ""),
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", ""),
        google_redirect_uri=os.getenv("GOOGLE_REDIRECT_URI", ""),
    )


def _is_placeholder(value: str) -> bool:
    # .env.example ships values like "your_client_id_here".
    return not value or "your_" in value or "_here" in value


def validate_environment() -> None:
    """Raise one RuntimeError listing every missing or placeholder Google variable."""
    missing: List[str] = []
    for key, description in REQUIRED_GOOGLE_VARS:
        if _is_placeholder(os.getenv(key, "")):
            missing.append(f"{key} ({description})")

    if missing:
        lines = ["Missing or invalid environment variables:"]
        lines += [f"  - {item}" for item in missing]
        lines.append("Copy .env.example to .env and fill in the Google OAuth credentials.")
        raise RuntimeError("\n".join(lines))
