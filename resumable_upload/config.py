"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional
import json

from dotenv import load_dotenv


@dataclass
class Config:
    """
    Upload Server Configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (UPLOAD_*)
    2. Config file (config.json)
    3. Default values
    """
    # Network
    host: str = '0.0.0.0'
    port: int = 8090

    # Storage
    upload_dir: Path = field(default_factory=lambda: Path('./tmp'))
    files_dir: Optional[Path] = None  # Defaults to upload_dir/files
    default_name: str = 'uploaded_file'
    fsync: bool = True

    # Seconds an out-of-order chunk waits for the bytes in front of it
    gap_timeout: float = 5.0

    # CORS
    cors_origins: List[str] = field(default_factory=lambda: ['*'])

    # Logging
    log_level: str = 'INFO'

    @property
    def resolved_files_dir(self) -> Path:
        return self.files_dir if self.files_dir else self.upload_dir / 'files'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Network
        config.host = os.getenv('UPLOAD_HOST', config.host)
        config.port = int(os.getenv('UPLOAD_PORT', config.port))

        # Storage
        upload_dir = os.getenv('UPLOAD_DIR')
        if upload_dir:
            config.upload_dir = Path(upload_dir)

        files_dir = os.getenv('UPLOAD_FILES_DIR')
        if files_dir:
            config.files_dir = Path(files_dir)

        config.default_name = os.getenv('UPLOAD_DEFAULT_NAME', config.default_name)
        config.fsync = os.getenv('UPLOAD_FSYNC', 'true').lower() == 'true'
        config.gap_timeout = float(os.getenv('UPLOAD_GAP_TIMEOUT', config.gap_timeout))

        # CORS
        origins = os.getenv('UPLOAD_CORS_ORIGINS', '')
        if origins:
            config.cors_origins = [o.strip() for o in origins.split(',') if o.strip()]

        # Logging
        config.log_level = os.getenv('UPLOAD_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Network
        config.host = data.get('host', config.host)
        config.port = data.get('port', config.port)

        # Storage
        if 'upload_dir' in data:
            config.upload_dir = Path(data['upload_dir'])
        if data.get('files_dir'):
            config.files_dir = Path(data['files_dir'])
        config.default_name = data.get('default_name', config.default_name)
        config.fsync = data.get('fsync', config.fsync)
        config.gap_timeout = data.get('gap_timeout', config.gap_timeout)

        # CORS
        config.cors_origins = data.get('cors_origins', config.cors_origins)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'port': self.port,
            'upload_dir': str(self.upload_dir),
            'files_dir': str(self.files_dir) if self.files_dir else None,
            'default_name': self.default_name,
            'fsync': self.fsync,
            'gap_timeout': self.gap_timeout,
            'cors_origins': list(self.cors_origins),
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()

    # Merge (env takes precedence for non-default values)
    defaults = Config()
    for key in ['host', 'port', 'upload_dir', 'files_dir', 'default_name',
                'fsync', 'gap_timeout', 'cors_origins', 'log_level']:
        env_val = getattr(env_config, key)
        default_val = getattr(defaults, key)
        if env_val != default_val:
            setattr(config, key, env_val)

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "0.0.0.0",
  "port": 8090,
  "upload_dir": "./tmp",
  "files_dir": "./tmp/files",
  "default_name": "uploaded_file",
  "fsync": true,
  "gap_timeout": 5.0,
  "cors_origins": ["*"],
  "log_level": "INFO"
}
"""
