"""
SampleApp API service.

The package assembles the HTTP service through an ordered bring-up
sequence (see `sampleapp.bootstrap`) and serves it with uvicorn.
"""

from __future__ import annotations

__version__ = "0.1.0"

SERVICE_NAME = "SampleApp API"

__all__ = ["SERVICE_NAME", "__version__"]
