"""Personal content organizer core with Notion workspace mirroring."""

__version__ = "0.4.0"
