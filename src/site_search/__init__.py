"""AI-assisted search pipeline over a catalogued corpus of web pages."""

__version__ = "0.1.0"
