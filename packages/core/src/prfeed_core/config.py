import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "base_url": None,  # None = github.com; set to "https://ghe.example.com/api/v3" for GitHub Enterprise
    "scope": "involves:@me",  # search qualifier bounding which pull requests are visible at all
    "poll_interval": 300,  # seconds between refreshes in watch mode
    "timeout": 120,  # seconds a single listing may take before it is cancelled
}


def load_config(config_path: str = ".prfeed.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prfeed.yml in the current directory (``~`` is expanded)
      3. CLI argument overrides
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path).expanduser()
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN") or config.get("github_token")

    return config
