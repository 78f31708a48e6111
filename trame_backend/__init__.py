"""trame: a single-account note service with debounced persistence."""

__version__ = "1.0.0"
