"""
Configuration Management System
Handles browser, oracle and per-scheme settings for interception sessions
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings
from cryptography.fernet import Fernet
import json
import structlog

logger = structlog.get_logger()

SUPPORTED_SCHEMES = ("akamai", "datadome", "incapsula", "kasada")

DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9"
DEFAULT_KASADA_IDENTIFIER_PATH = (
    "149e9513-01fa-4fb0-aad4-566afd725d1b/2d206a39-8ed7-437e-a3be-862e0f06eea3"
)


class SecurityConfig(BaseSettings):
    """Key material used to protect stored oracle credentials"""

    master_key: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("BRIDGE_MASTER_KEY", "master_key"),
        validate_default=True
    )

    @field_validator("master_key", mode='before')
    @classmethod
    def load_or_generate_master_key(cls, v):
        """Reuse the stored master key, or generate one on first run"""
        if v:
            return v

        key_file = Path("config/.master_key")
        if key_file.exists():
            return key_file.read_text().strip()

        key_str = Fernet.generate_key().decode()
        key_file.parent.mkdir(parents=True, exist_ok=True)
        key_file.write_text(key_str)
        key_file.chmod(0o600)  # Read/write for owner only

        logger.warning("Generated new master key", key_file=str(key_file))
        return key_str

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True
    }


class OracleConfig(BaseSettings):
    """Solving oracle (Hyper Solutions API) settings"""

    api_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("HYPER_API_KEY", "api_key")
    )
    ip_lookup_url: str = Field("https://ip.hypersolutions.co/ip")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "BRIDGE_",
        "extra": "ignore",
        "populate_by_name": True
    }


class BrowserConfig(BaseSettings):
    """Browser identity and session settings shared by every controller"""

    headless: bool = Field(True)
    browser_channel: Optional[str] = Field(None)  # e.g. "chrome", "msedge"

    # Identity reported to the oracle; the user agent is read from the page when unset
    user_agent: Optional[str] = Field(None)
    accept_language: str = Field(DEFAULT_ACCEPT_LANGUAGE)
    ip_address: Optional[str] = Field(None)

    # How long the CLI keeps a page open after navigation
    hold_seconds: float = Field(30.0)

    @field_validator("hold_seconds", mode='after')
    @classmethod
    def validate_hold_seconds(cls, v):
        if v < 0:
            raise ValueError("hold_seconds cannot be negative")
        return v

    model_config = {
        "env_file": ".env",
        "env_prefix": "BRIDGE_",
        "extra": "ignore"
    }


class SchemeConfig(BaseSettings):
    """Protection-scheme specific settings"""

    enabled_schemes: List[str] = Field(default=list(SUPPORTED_SCHEMES))

    # Two-segment identifier shared by the Kasada ips.js script and /tl endpoint
    kasada_identifier_path: str = Field(DEFAULT_KASADA_IDENTIFIER_PATH)

    # Static Incapsula map: script path prefix -> sitekey. Empty means discovery mode.
    incapsula_sitekeys: Dict[str, str] = Field(default_factory=dict)

    @field_validator("enabled_schemes", mode='after')
    @classmethod
    def validate_enabled_schemes(cls, v):
        normalized = [scheme.strip().lower() for scheme in v]
        unknown = [scheme for scheme in normalized if scheme not in SUPPORTED_SCHEMES]
        if unknown:
            raise ValueError(
                f"Unknown schemes {unknown}. Choose from: {list(SUPPORTED_SCHEMES)}"
            )
        return normalized

    @field_validator("incapsula_sitekeys", mode='after')
    @classmethod
    def validate_sitekey_paths(cls, v):
        for path in v:
            if not path.startswith("/"):
                raise ValueError(f"Sitekey path must start with '/': {path!r}")
        return v

    @field_validator("kasada_identifier_path", mode='after')
    @classmethod
    def strip_identifier_slashes(cls, v):
        v = v.strip("/")
        if v.count("/") != 1:
            raise ValueError("kasada_identifier_path must have exactly two segments")
        return v

    model_config = {
        "env_file": ".env",
        "env_prefix": "BRIDGE_",
        "extra": "ignore"
    }


class APIKeyManager:
    """
    Secure storage and retrieval of oracle API keys
    Uses encryption to protect keys at rest
    """

    def __init__(self, master_key: str, key_file: Path = Path("config/api_keys.enc")):
        self.cipher = Fernet(master_key.encode() if isinstance(master_key, str) else master_key)
        self.key_file = key_file
        self.keys = self._load_keys()

    def _load_keys(self) -> Dict[str, str]:
        """Load and decrypt API keys from secure storage"""
        if not self.key_file.exists():
            self.key_file.parent.mkdir(parents=True, exist_ok=True)
            return {}

        try:
            encrypted_data = self.key_file.read_bytes()
            decrypted_data = self.cipher.decrypt(encrypted_data)
            return json.loads(decrypted_data)
        except Exception as e:
            logger.error("Failed to load API keys", error=str(e))
            return {}

    def _save_keys(self):
        """Encrypt and save all API keys"""
        encrypted_data = self.cipher.encrypt(json.dumps(self.keys).encode())
        self.key_file.write_bytes(encrypted_data)
        self.key_file.chmod(0o600)

    def save_key(self, service: str, api_key: str):
        """Encrypt and save an API key"""
        self.keys[service] = api_key
        self._save_keys()
        logger.info("API key saved", service=service)

    def get_key(self, service: str) -> Optional[str]:
        """Retrieve a decrypted API key"""
        return self.keys.get(service)

    def list_services(self) -> List[str]:
        """List all services with stored API keys"""
        return list(self.keys.keys())

    def remove_key(self, service: str):
        """Remove an API key from storage"""
        if service in self.keys:
            del self.keys[service]
            self._save_keys()
            logger.info("API key removed", service=service)


class ApplicationConfig:
    """
    Main configuration class that combines all config sections
    This is what the rest of the application will use
    """

    def __init__(self, config_file: Path = Path("config/default.yaml")):
        self.security = SecurityConfig()
        self.oracle = OracleConfig()
        self.browser = BrowserConfig()
        self.schemes = SchemeConfig()
        self.api_keys = APIKeyManager(self.security.master_key)

        # Load custom configuration from YAML if it exists
        self.custom_config = self._load_custom_config(config_file)
        self._apply_custom_config()

    def _load_custom_config(self, config_file: Path) -> Dict[str, Any]:
        """Load user-defined configuration from YAML files"""
        if config_file.exists():
            with open(config_file, 'r') as f:
                return yaml.safe_load(f) or {}
        return {}

    def _apply_custom_config(self):
        """Fill settings left at their defaults from the YAML file"""
        incapsula = self.custom_config.get("incapsula") or {}
        sitekeys = incapsula.get("sitekeys") or {}
        if sitekeys and not self.schemes.incapsula_sitekeys:
            self.schemes = SchemeConfig(
                enabled_schemes=self.schemes.enabled_schemes,
                kasada_identifier_path=self.schemes.kasada_identifier_path,
                incapsula_sitekeys=sitekeys,
            )
            logger.debug("Loaded Incapsula sitekeys from YAML", paths=list(sitekeys))

    def resolve_api_key(self) -> Optional[str]:
        """Environment key first, then the encrypted key store"""
        return self.oracle.api_key or self.api_keys.get_key("hyper")
