"""brain: capture what you were working on, with git context, and resume it later."""

__version__ = "0.3.0"
