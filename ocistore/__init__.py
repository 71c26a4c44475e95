"""An in-memory OCI distribution registry served over HTTP."""

__version__ = "0.1.0"
__all__ = ["digest", "names", "registry", "router", "server", "state", "web"]