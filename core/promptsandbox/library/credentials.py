import os
from typing import ClassVar, Dict, Optional

from pydantic import BaseModel, ConfigDict, SecretStr

ENV_KEYS: Dict[str, str] = {"openai": "OPENAI_API_KEY"}


class Credential(BaseModel):
    """Read-only credential shared by every concurrent node run."""

    model_config = ConfigDict(frozen=True)

    provider: str = "openai"
    api_key: SecretStr


class CredentialsManager:
    """Manages provider credentials.

    In-memory store, one credential per provider.
    """
    _instance: ClassVar[Optional["CredentialsManager"]] = None
    _store: Dict[str, Credential] = {}

    def __new__(cls) -> "CredentialsManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def set_api_key(self, provider: str, api_key: str) -> Credential:
        """Store an API key for a provider."""
        credential = Credential(provider=provider, api_key=SecretStr(api_key))
        self._store[provider] = credential
        return credential

    def get_credential(self, provider: str = "openai") -> Optional[Credential]:
        """Retrieve the stored credential, falling back to the environment."""
        credential = self._store.get(provider)
        if credential is None:
            credential = credential_from_env(provider)
        return credential

    def clear(self) -> None:
        self._store.clear()


def credential_from_env(provider: str = "openai") -> Optional[Credential]:
    """Build a credential from the provider's environment variable."""
    env_key = ENV_KEYS.get(provider)
    value = os.environ.get(env_key) if env_key else None
    if not value:
        return None
    return Credential(provider=provider, api_key=SecretStr(value))


credentials_manager = CredentialsManager()
