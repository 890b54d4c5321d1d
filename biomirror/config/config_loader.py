"""Configuration loader for the BioMirror engine"""

import logging
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
import os


PROJECT_ROOT = Path(__file__).resolve().parents[2]

logger = logging.getLogger(__name__)


class Config:
    """Configuration manager for the BioMirror engine"""

    def __init__(self, config_path: Optional[str] = None):
        self.explicit = config_path is not None
        if config_path is None:
            env = os.getenv('BIOMIRROR_ENV', 'development')
            # Try environment-specific config first, fall back to default
            env_config = PROJECT_ROOT / "config" / f"config.{env}.yaml"
            if env_config.exists():
                config_path = str(env_config)
            else:
                config_path = str(PROJECT_ROOT / "config" / "config.yaml")

        self.config_path = Path(config_path)
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        if not self.config_path.exists():
            if self.explicit:
                raise FileNotFoundError(f"Config file not found: {self.config_path}")
            # Installed without the repository config: built-in defaults apply
            logger.warning(f"Config file not found: {self.config_path}, using defaults")
            return {}

        with open(self.config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation

        Args:
            key: Configuration key in dot notation (e.g., 'dissociation.entry_threshold')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def __getitem__(self, key: str) -> Any:
        """Allow dictionary-style access"""
        return self.get(key)

    def validate(self) -> None:
        """Validate configuration values"""
        entry = self.get('dissociation.entry_threshold', 0.6)
        exit_ = self.get('dissociation.exit_threshold', 0.5)
        if not 0 <= exit_ <= entry <= 1:
            raise ValueError(
                f"Invalid dissociation thresholds: exit={exit_}, entry={entry}; "
                f"expected 0 <= exit <= entry <= 1"
            )

        for key in ('dissociation.entry_sustain_samples', 'dissociation.exit_sustain_samples'):
            value = self.get(key, 1)
            if int(value) < 1:
                raise ValueError(f"Invalid {key}: {value}, must be >= 1")

        tier = self.get('session.sampling_frequency', 'medium')
        if tier not in ('low', 'medium', 'high'):
            raise ValueError(f"Invalid sampling_frequency: {tier}")


# Global config instance
config = Config()
