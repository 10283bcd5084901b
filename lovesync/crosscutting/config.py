import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import dotenv_values

from lovesync.domain.entities import ScrobbleAccount


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass(frozen=True)
class ScrobbleSettings:
    """Connection settings for the scrobble service."""

    api_key: str
    api_secret: str
    host: str = "ws.audioscrobbler.com"
    version: str = "2.0"
    secure: bool = True
    page_size: int = 1000
    timeout: float = 30.0


def _parse_bool(value: str) -> bool:
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


class ConfigManager:
    """Manages application secrets and per-user account configuration."""

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize config manager."""
        self.config_dir = Path(config_dir) if config_dir else Path.home() / '.lovesync'
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.accounts_file = self.config_dir / 'accounts.json'
        self.env_file = self.config_dir / '.env'

    def load_env_vars(self) -> Dict[str, str]:
        """Load variables from the .env file, overridden by the process environment."""
        env_vars: Dict[str, str] = {}

        if self.env_file.exists():
            try:
                env_vars.update({k: v for k, v in dotenv_values(self.env_file).items() if v is not None})
            except (IOError, UnicodeDecodeError) as e:
                raise ConfigError(f"Failed to load .env file {self.env_file}: {e}")

        for key, value in os.environ.items():
            if key.startswith('LOVESYNC_'):
                env_vars[key] = value

        return env_vars

    def save_env_vars(self, env_vars: Dict[str, str]) -> None:
        """Save variables to the .env file."""
        try:
            with open(self.env_file, 'w') as f:
                for key, value in env_vars.items():
                    f.write(f"{key}={value}\n")
        except IOError as e:
            raise ConfigError(f"Failed to save .env file {self.env_file}: {e}")

    def get_scrobble_settings(self) -> ScrobbleSettings:
        """Build scrobble service settings from the environment."""
        env_vars = self.load_env_vars()

        api_key = env_vars.get('LOVESYNC_API_KEY')
        api_secret = env_vars.get('LOVESYNC_API_SECRET')

        if not api_key:
            raise ConfigError("LOVESYNC_API_KEY not found in environment")
        if not api_secret:
            raise ConfigError("LOVESYNC_API_SECRET not found in environment")

        try:
            return ScrobbleSettings(
                api_key=api_key,
                api_secret=api_secret,
                host=env_vars.get('LOVESYNC_API_HOST') or ScrobbleSettings.host,
                version=env_vars.get('LOVESYNC_API_VERSION') or ScrobbleSettings.version,
                secure=_parse_bool(env_vars.get('LOVESYNC_SECURE', '1')),
                page_size=int(env_vars.get('LOVESYNC_PAGE_SIZE') or ScrobbleSettings.page_size),
                timeout=float(env_vars.get('LOVESYNC_TIMEOUT') or ScrobbleSettings.timeout),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid scrobble settings: {e}")

    def load_accounts_data(self) -> Dict[str, Any]:
        """Load raw account entries from accounts.json."""
        if not self.accounts_file.exists():
            return {}

        try:
            with open(self.accounts_file, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigError(f"Failed to load accounts from {self.accounts_file}: {e}")

    def _write_accounts_data(self, data: Dict[str, Any]) -> None:
        try:
            with open(self.accounts_file, 'w') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except IOError as e:
            raise ConfigError(f"Failed to save accounts to {self.accounts_file}: {e}")

    def list_accounts(self) -> List[ScrobbleAccount]:
        """Return every configured account, in file order."""
        accounts = []
        for user_id, entry in self.load_accounts_data().items():
            accounts.append(ScrobbleAccount(
                user_id=user_id,
                username=entry.get('username', ''),
                session_key=entry.get('session_key'),
                sync_favorites=bool(entry.get('sync_favorites', True)),
            ))
        return accounts

    def get_account(self, user_id: str) -> Optional[ScrobbleAccount]:
        for account in self.list_accounts():
            if account.user_id == user_id:
                return account
        return None

    def save_account(self, account: ScrobbleAccount) -> None:
        """Add or replace the entry for an account."""
        data = self.load_accounts_data()
        data[account.user_id] = {
            'username': account.username,
            'session_key': account.session_key,
            'sync_favorites': account.sync_favorites,
        }
        self._write_accounts_data(data)

    def remove_account(self, user_id: str) -> bool:
        data = self.load_accounts_data()
        if user_id not in data:
            return False
        del data[user_id]
        self._write_accounts_data(data)
        return True

    def validate_configuration(self) -> Dict[str, bool]:
        """Validate that all required configuration is present."""
        env_vars = self.load_env_vars()
        accounts = self.list_accounts()

        return {
            'api_key': bool(env_vars.get('LOVESYNC_API_KEY')),
            'api_secret': bool(env_vars.get('LOVESYNC_API_SECRET')),
            'accounts': bool(accounts),
            'session_keys': any(a.has_credential for a in accounts),
        }

    def get_config_summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        accounts = self.list_accounts()

        return {
            'config_dir': str(self.config_dir),
            'accounts_file': str(self.accounts_file),
            'env_file': str(self.env_file),
            'validation': self.validate_configuration(),
            'accounts': [
                {
                    'user_id': a.user_id,
                    'username': a.username,
                    'has_session_key': a.has_credential,
                    'sync_favorites': a.sync_favorites,
                }
                for a in accounts
            ],
        }


# Global instance, created on first use
config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global config manager instance."""
    global config_manager
    if config_manager is None:
        config_manager = ConfigManager()
    return config_manager


def setup_config(config_dir: Optional[str] = None) -> ConfigManager:
    """Setup configuration with custom directory."""
    global config_manager
    config_manager = ConfigManager(config_dir)
    return config_manager
