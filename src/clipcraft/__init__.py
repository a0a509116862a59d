"""clipcraft: transcript-to-social-content generation."""

__version__ = "0.1.0"
