"""Stock Time Machine backend."""

__version__ = "1.0.0"
