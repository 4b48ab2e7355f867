"""Payment option planning and payment lifecycle tracking."""

__version__ = "0.1.0"
