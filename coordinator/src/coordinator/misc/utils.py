from time import monotonic

from rich.console import Console

# Handles
cout = Console()
cerr = Console(stderr=True)


def monotonic_s() -> float:
    """Return a monotonic clock reading in seconds (for debounce windows)."""
    return monotonic()
