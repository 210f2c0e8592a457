"""Monitor workflows, keyed by the name carried in queue jobs."""

from .auto_verify import auto_verify
from .detect_changes import detect_changes
from .initialize_snapshot import initialize_snapshot
from .reverify_ownership import reverify_ownership

WORKFLOWS = {
    "detect_changes": detect_changes,
    "auto_verify": auto_verify,
    "reverify_ownership": reverify_ownership,
    "initialize_snapshot": initialize_snapshot,
}

__all__ = ["WORKFLOWS", "auto_verify", "detect_changes", "initialize_snapshot", "reverify_ownership"]
