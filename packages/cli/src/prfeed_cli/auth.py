"""GitHub token resolution with gh CLI fallback.

Resolution order (stops at first success):
  1. GITHUB_TOKEN environment variable, or ``github_token`` in .prfeed.yml
     (load_config already merged the two, environment first)
  2. `gh auth token` for the configured host (GitHub CLI session)
"""

from __future__ import annotations

import logging
import subprocess
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def _gh_hostname(base_url: str | None) -> str | None:
    """Return the host to pass to `gh auth token --hostname`, None for github.com."""
    if not base_url:
        return None
    host = urlparse(base_url).hostname
    if not host or host in ("github.com", "api.github.com"):
        return None
    return host


def resolve_github_token(config: dict) -> str | None:
    """Return a GitHub token or None if no valid source is available.

    Never raises. Callers should check for None and emit a UsageError.
    """
    token = config.get("github_token")
    if token:
        return token

    cmd = ["gh", "auth", "token"]
    hostname = _gh_hostname(config.get("base_url"))
    if hostname:
        cmd += ["--hostname", hostname]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        # gh is not installed or timed out.
        return None

    if result.returncode == 0 and result.stdout.strip():
        logger.debug("Resolved GitHub token via gh CLI session.")
        return result.stdout.strip()
    return None
