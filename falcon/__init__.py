"""falcon - wildcard DNS for local Docker containers through a single proxy."""

__version__ = "0.4.0"
