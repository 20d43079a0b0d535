"""Read back a cycle audit log."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional


def replay_cycle_log(filepath: str, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """Parse a JSONL cycle log.

    Args:
        filepath: Path to a .jsonl cycle log.
        event_type: If given, only events of this type are returned.

    Raises:
        FileNotFoundError: If the log file does not exist.
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Cycle log not found: {filepath}")

    events: List[Dict[str, Any]] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue  # partial write
        if event_type is None or event.get("event_type") == event_type:
            events.append(event)
    return events
