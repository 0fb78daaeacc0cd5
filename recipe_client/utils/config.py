"""Configuration management for the recipe client.

Loads environment variables from system environment and .env file.
Priority order: system environment > .env file > hardcoded defaults
"""

import os
from typing import Optional

from dotenv import load_dotenv


# Load .env file (if exists, silently continues if missing)
load_dotenv()


class Config:
    """Client configuration loaded from environment variables."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # Resource server base URL. RECIPE_BACKEND_URL is accepted as a fallback name.
        # Trailing slashes are stripped so paths can always be joined with a leading "/"
        base_url = os.getenv("RECIPE_API_BASE") or os.getenv("RECIPE_BACKEND_URL") or "http://localhost:8000"
        self.API_BASE_URL: str = base_url.rstrip("/")
        # Page size requested by every list/search screen. Default: 12
        self.PAGE_SIZE: int = int(os.getenv("PAGE_SIZE", "12"))
        # Quiet period before free-text and ingredient input is turned into a query. Default: 350 ms
        self.SEARCH_DEBOUNCE_MS: int = int(os.getenv("SEARCH_DEBOUNCE_MS", "350"))
        # Total timeout for a single HTTP request, in seconds. Default: 15
        self.REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15"))
        # Bearer token for query.py runs that do not log in. Optional
        self.API_TOKEN: Optional[str] = os.getenv("RECIPE_API_TOKEN") or None
        # Image shown for recipes the server returns without image/cover
        self.PLACEHOLDER_IMAGE_URL: str = os.getenv(
            "PLACEHOLDER_IMAGE_URL", "https://via.placeholder.com/640x360?text=Recipe"
        )

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If a value is out of range or the base URL is not http(s).
        """
        if not self.API_BASE_URL.startswith(("http://", "https://")):
            raise ValueError(f"RECIPE_API_BASE must be an http(s) URL, got: {self.API_BASE_URL}")
        if self.PAGE_SIZE < 1:
            raise ValueError(f"PAGE_SIZE must be at least 1, got: {self.PAGE_SIZE}")
        if self.SEARCH_DEBOUNCE_MS < 0:
            raise ValueError(f"SEARCH_DEBOUNCE_MS must not be negative, got: {self.SEARCH_DEBOUNCE_MS}")
        if self.REQUEST_TIMEOUT_SECONDS <= 0:
            raise ValueError(
                f"REQUEST_TIMEOUT_SECONDS must be greater than 0, got: {self.REQUEST_TIMEOUT_SECONDS}"
            )


# Create module-level config instance and validate immediately
config = Config()
config.validate()
