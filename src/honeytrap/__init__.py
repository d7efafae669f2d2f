"""
Honeytrap - credential capture honeypot

A FastAPI service that exposes a fake login surface, records every
request and login attempt without slowing the response, and serves a
PIN-gated analytics console over the captured data.
"""

__version__ = "0.1.0"

from .main import app

__all__ = ["app"]
