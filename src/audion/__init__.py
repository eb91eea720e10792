"""Audion - playlist backend with Spotify catalog search and YouTube enrichment."""

__version__ = "0.1.0"
