"""
Resumable Upload Server

Chunked file uploads over HTTP that survive disconnects and restarts.
"""

from .config import Config, load_config
from .service import TransferService, TransferInfo

__version__ = '1.0.0'

__all__ = ['Config', 'load_config', 'TransferService', 'TransferInfo']
