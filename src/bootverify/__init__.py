"""Bootstrap equivalence verification for self-hosted compilers."""

__version__ = "0.1.0"
