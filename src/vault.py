"""Encrypted secrets (GitHub App key, provider tokens) using Ansible Vault"""

import json
import logging
import os
import secrets
from pathlib import Path
from typing import Any, Dict, List, Optional

from ansible.constants import DEFAULT_VAULT_ID_MATCH
from ansible.parsing.vault import VaultLib, VaultSecret

logger = logging.getLogger(__name__)

# Well-known secret names
GITHUB_PRIVATE_KEY = "github_private_key"
WEBHOOK_SECRET = "webhook_secret"


def provider_token_key(provider: str) -> str:
    return f"{provider}_token"


class SecretsManager:
    """Stores secrets as one Ansible-Vault-encrypted JSON document"""

    def __init__(self, config_dir: Path):
        """
        Initialize SecretsManager

        Args:
            config_dir: Configuration directory path
        """
        self.config_dir = config_dir
        self.vault_file = config_dir / "credentials.vault"
        self.vault_password_file = config_dir / ".vault_password"
        self._vault: Optional[VaultLib] = None
        self._secrets: Dict[str, Any] = {}
        self._loaded = False

    @property
    def initialized(self) -> bool:
        return self.vault_password_file.exists()

    def init(self) -> None:
        """Create the vault password and an empty vault if missing"""
        if not self.vault_password_file.exists():
            logger.info("Creating new vault password")
            self.config_dir.mkdir(parents=True, exist_ok=True)
            self.vault_password_file.write_text(secrets.token_urlsafe(32))
            os.chmod(self.vault_password_file, 0o600)
            logger.warning("⚠️  Keep the .vault_password file safe! It's needed to decrypt secrets.")

        if not self.vault_file.exists():
            logger.info("Creating initial vault file")
            self._save({})

    def _get_vault(self) -> VaultLib:
        if self._vault is None:
            if not self.vault_password_file.exists():
                raise FileNotFoundError(f"Vault password file not found: {self.vault_password_file}")
            password = self.vault_password_file.read_text().strip()
            self._vault = VaultLib([(DEFAULT_VAULT_ID_MATCH, VaultSecret(password.encode()))])
        return self._vault

    def _load(self) -> Dict[str, Any]:
        if self._loaded:
            return self._secrets

        if self.vault_file.exists():
            logger.debug(f"Loading secrets from {self.vault_file}")
            decrypted = self._get_vault().decrypt(self.vault_file.read_bytes())
            self._secrets = json.loads(decrypted)
        else:
            self._secrets = {}

        self._loaded = True
        return self._secrets

    def _save(self, data: Optional[Dict[str, Any]] = None) -> None:
        if data is not None:
            self._secrets = data
            self._loaded = True

        encrypted = self._get_vault().encrypt(json.dumps(self._secrets).encode())
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.vault_file.write_bytes(encrypted)
        os.chmod(self.vault_file, 0o600)

    def set_secret(self, key: str, value: Any) -> None:
        self._load()[key] = value
        self._save()
        logger.info(f"Secret '{key}' updated")

    def get_secret(self, key: str, default: Any = None) -> Any:
        """
        Get a secret value

        Args:
            key: Secret key
            default: Default value if key not found

        Returns:
            Secret value or default
        """
        if not self.initialized:
            return default
        return self._load().get(key, default)

    def remove_secret(self, key: str) -> bool:
        data = self._load()
        if key not in data:
            logger.warning(f"Secret '{key}' not found")
            return False

        del data[key]
        self._save()
        logger.info(f"Secret '{key}' removed")
        return True

    def list_secret_keys(self) -> List[str]:
        return list(self._load().keys())
