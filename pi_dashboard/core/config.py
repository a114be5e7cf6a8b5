"""
Layered dashboard settings and API credentials.

Settings are merged from these sources, lowest precedence first:

1. ``pi_dashboard/config/default.yaml`` shipped with the package
2. ``config.yaml`` in the configuration directory
3. ``<ENVIRONMENT>.yaml`` in the configuration directory
4. the file given with ``--config``
5. ``PI_DASHBOARD_<SECTION>_<KEY>`` environment variables

Credentials are kept out of the settings tree. They come from their own
environment variables (``.env`` is honoured) or from a Fernet-encrypted file.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import yaml
from cryptography.fernet import Fernet, InvalidToken
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULTS_FILE = Path(__file__).resolve().parent.parent / "config" / "default.yaml"
ENV_PREFIX = "PI_DASHBOARD_"

# Credential name -> environment variable that overrides the encrypted file
CREDENTIAL_ENV_VARS = {
    'okx_api_key': 'OKX_API_KEY',
    'okx_api_secret': 'OKX_API_SECRET',
    'okx_passphrase': 'OKX_PASSPHRASE',
    'coingecko_api_key': 'COINGECKO_API_KEY',
    'twitter_bearer_token': 'TWITTER_BEARER_TOKEN',
}

_MISSING = object()


class ConfigError(Exception):
    """Unreadable or inconsistent configuration."""


def deep_merge(base: Dict[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``overlay`` into ``base`` in place, section by section."""
    for key, value in overlay.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            deep_merge(current, value)
        else:
            base[key] = value
    return base


def coerce_env_value(raw: str) -> Any:
    """Recover booleans and numbers from an environment string."""
    lowered = raw.strip().lower()
    if lowered in ('true', 'false'):
        return lowered == 'true'
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw


def read_yaml(path: Path) -> Dict[str, Any]:
    """Read one settings file; an empty file is an empty mapping."""
    try:
        with open(path, 'r') as stream:
            data = yaml.safe_load(stream)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    return data


class CredentialStore:
    """
    API credentials in a Fernet-encrypted JSON file.

    The key is generated on first use and stored beside the file as
    ``.secret_key``.
    """

    def __init__(self, path: Path):
        self.path = path
        self.key_path = path.parent / ".secret_key"
        self._fernet: Optional[Fernet] = None

    def open(self) -> None:
        """Load the key, creating it if needed."""
        if self.key_path.exists():
            key = self.key_path.read_bytes().strip()
        else:
            key = Fernet.generate_key()
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            self.key_path.write_bytes(key)
            logger.info(f"Created credentials key {self.key_path}")
        self._fernet = Fernet(key)

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            raise ConfigError("Credential store is not open")
        return self._fernet

    def read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        cipher = self._cipher()
        try:
            return json.loads(cipher.decrypt(self.path.read_bytes()).decode())
        except (InvalidToken, ValueError) as e:
            logger.error(f"Cannot decrypt credentials in {self.path}: {e}")
            return {}

    def write(self, credentials: Mapping[str, str]) -> None:
        token = self._cipher().encrypt(json.dumps(dict(credentials)).encode())
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(token)
        except OSError as e:
            raise ConfigError(f"Cannot write credentials to {self.path}: {e}")

    def get(self, name: str) -> Optional[str]:
        return self.read().get(name)

    def put(self, name: str, value: str) -> None:
        credentials = self.read()
        credentials[name] = value
        self.write(credentials)
        logger.debug(f"Stored credential {name}")

    def remove(self, name: str) -> bool:
        credentials = self.read()
        if credentials.pop(name, None) is None:
            return False
        self.write(credentials)
        return True


class ConfigManager:
    """
    Settings tree addressed with dotted keys such as ``cache.price.window``.
    """

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        config_file: Optional[Path] = None,
        credentials_file: Optional[Path] = None,
        env_prefix: str = ENV_PREFIX
    ):
        """Initialize configuration manager.

        Args:
            config_dir: Directory holding config.yaml, <ENVIRONMENT>.yaml
                and the credentials file
            config_file: Extra YAML file merged last (the CLI --config option)
            credentials_file: Encrypted credentials file
            env_prefix: Prefix of environment overrides
        """
        self.config_dir = Path(config_dir) if config_dir else Path(".pi_dashboard")
        self.config_file = Path(config_file) if config_file else None
        self.env_prefix = env_prefix
        self.credentials = CredentialStore(
            Path(credentials_file) if credentials_file else self.config_dir / "secrets.enc"
        )

        self._settings: Dict[str, Any] = {}
        self._stored_credentials: Dict[str, str] = {}
        self._loaded = False

    async def initialize(self) -> None:
        """Read every source. Raises ConfigError on bad input."""
        load_dotenv()
        self.credentials.open()
        self.reload()
        self._loaded = True
        logger.info(f"Configuration loaded ({', '.join(sorted(self._settings))})")

    def sources(self) -> List[Path]:
        """Existing settings files, lowest precedence first."""
        environment = os.getenv("ENVIRONMENT", "development")
        candidates = [
            DEFAULTS_FILE,
            self.config_dir / "config.yaml",
            self.config_dir / f"{environment}.yaml",
        ]

        if self.config_file is not None:
            if not self.config_file.exists():
                raise ConfigError(f"Config file not found: {self.config_file}")
            candidates.append(self.config_file)

        return [path for path in candidates if path.exists()]

    def reload(self) -> None:
        settings: Dict[str, Any] = {}
        for path in self.sources():
            deep_merge(settings, read_yaml(path))
            logger.debug(f"Merged settings from {path}")

        for dotted, value in self._env_overrides():
            self._assign(settings, dotted, value)

        self._settings = settings
        self._stored_credentials = self.credentials.read()

    def _env_overrides(self) -> Iterator[Tuple[str, Any]]:
        for name, raw in os.environ.items():
            if name.startswith(self.env_prefix):
                dotted = name[len(self.env_prefix):].lower().replace('_', '.')
                logger.debug(f"Environment override for {dotted}")
                yield dotted, coerce_env_value(raw)

    @staticmethod
    def _assign(tree: Dict[str, Any], dotted: str, value: Any) -> None:
        *parents, leaf = dotted.split('.')
        node = tree
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value

    def _lookup(self, dotted: str) -> Any:
        if not self._loaded:
            raise ConfigError("Configuration not loaded")

        node: Any = self._settings
        for part in dotted.split('.'):
            if not isinstance(node, dict) or part not in node:
                return _MISSING
            node = node[part]
        return node

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def set(self, key: str, value: Any) -> None:
        """Override one value for the lifetime of this manager."""
        self._assign(self._settings, key, value)

    def section(self, key: str) -> Dict[str, Any]:
        """A mapping section, empty when missing."""
        value = self.get(key, {})
        if not isinstance(value, dict):
            raise ConfigError(f"Configuration key '{key}' is not a section")
        return value

    def get_all(self) -> Dict[str, Any]:
        return copy.deepcopy(self._settings)

    def get_credential(self, name: str) -> Optional[str]:
        """An API credential; its environment variable wins over the encrypted file."""
        env_var = CREDENTIAL_ENV_VARS.get(name)
        if env_var and os.getenv(env_var):
            return os.getenv(env_var)
        return self._stored_credentials.get(name)

    async def store_credential(self, name: str, value: str) -> None:
        self.credentials.put(name, value)
        self._stored_credentials = self.credentials.read()
