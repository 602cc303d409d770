"""Client mailbox monitor that drafts AI replies and extracts to-dos."""

__version__ = "0.1.0"
