"""Tab agent: orchestration core for natural-language browser tasks."""

__version__ = "0.1.0"
