"""Exceptions raised for caller misuse of the reconstruction API.

The geometric stages themselves never raise: degenerate input simply leaves
the graph unchanged.
"""


class ReconError(Exception):
    """Base class for all structflo.recon errors."""


class ConfigError(ReconError, ValueError):
    """Raised when a ReconConfig holds an out-of-range threshold."""
