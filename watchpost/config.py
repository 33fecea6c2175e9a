"""Client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_BASE_URL = "http://localhost:8000"


@dataclass
class WatchpostConfig:
    """Configuration for the lifecycle client."""

    base_url: str = DEFAULT_BASE_URL

    # HTTP
    timeout_seconds: float = 15.0

    # Dashboards refresh incident and evidence lists on this interval
    poll_interval_seconds: float = 15.0

    # Cameras with an id at or above this value are AI worker cameras,
    # visible to every viewer
    ai_camera_threshold: int = 29

    # Camera used for viewer reports when the camera list is unavailable
    default_camera_id: int = 1

    # Delay before an assignment screen dismisses itself after a success
    assignment_dismiss_seconds: float = 1.5

    # Local state (sessions, base URL override, emergency contact)
    state_dir: Path = field(default_factory=lambda: Path.home() / ".watchpost")

    @classmethod
    def from_env(cls, env_file: str | os.PathLike | None = None) -> WatchpostConfig:
        """Build configuration from the environment (and a .env file if present)."""
        load_dotenv(env_file)

        config = cls()
        config.base_url = os.environ.get("WATCHPOST_API_URL", config.base_url).rstrip("/")
        config.timeout_seconds = float(
            os.environ.get("WATCHPOST_TIMEOUT", config.timeout_seconds)
        )
        config.poll_interval_seconds = float(
            os.environ.get("WATCHPOST_POLL_INTERVAL", config.poll_interval_seconds)
        )
        config.ai_camera_threshold = int(
            os.environ.get("WATCHPOST_AI_CAMERA_THRESHOLD", config.ai_camera_threshold)
        )
        config.default_camera_id = int(
            os.environ.get("WATCHPOST_DEFAULT_CAMERA_ID", config.default_camera_id)
        )
        state_dir = os.environ.get("WATCHPOST_STATE_DIR")
        if state_dir:
            config.state_dir = Path(state_dir).expanduser()
        return config
