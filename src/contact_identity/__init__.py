"""Contact Identity - reconcile contact submissions into identity graphs."""

__version__ = "0.1.0"
