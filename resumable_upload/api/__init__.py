"""
API Module - REST API for Resumable Uploads

Provides the HTTP endpoints of the upload protocol.
"""

from .rest import create_app, run_api_server

__all__ = ['create_app', 'run_api_server']
