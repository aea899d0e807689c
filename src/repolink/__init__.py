"""Track local Git repositories and reconcile their commits with a backend."""

__version__ = "0.1.0"
