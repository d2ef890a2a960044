"""Track remote pages and feeds as a chain of reversible edits."""

__version__ = "0.1.0"
