"""pagetimer: a navigation-aware, crash-persistent page countdown."""

__version__ = "0.1.0"
