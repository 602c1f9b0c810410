"""Payment-to-order pipeline for event registrations."""

__version__ = "1.0.0"
