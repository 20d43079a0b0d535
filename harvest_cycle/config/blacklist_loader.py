"""Load the payout blacklist (excluded owner wallets) from JSON."""

import json
from pathlib import Path
from typing import Set

from ..core.errors import ConfigurationError


def load_blacklist(filepath: str = "config/blacklist.json") -> Set[str]:
    """Load excluded wallet addresses from a JSON file.

    Args:
        filepath: Path to a JSON list of addresses, or an object whose
            keys are addresses (values are free-form labels).

    Returns:
        Set of excluded owner addresses. Empty if the file does not exist.

    Raises:
        ConfigurationError: The file exists but cannot be read, is not
            valid JSON, or is not a list/object of address strings.
    """
    try:
        text = Path(filepath).read_text(encoding="utf-8")
    except FileNotFoundError:
        return set()
    except OSError as exc:
        raise ConfigurationError(f"Blacklist {filepath} unreadable: {exc}") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Blacklist {filepath} is not valid JSON: {exc}") from exc
    if isinstance(data, dict):
        data = list(data.keys())
    if not isinstance(data, list):
        raise ConfigurationError(
            f"Blacklist {filepath} must be a JSON list or object, got {type(data).__name__}"
        )
    bad = [a for a in data if not isinstance(a, str)]
    if bad:
        raise ConfigurationError(f"Blacklist {filepath} has non-address entries: {bad[:3]}")
    return {a.strip() for a in data if a.strip()}
