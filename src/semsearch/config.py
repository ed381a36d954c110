"""Application configuration defaults and loading."""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Literal, Mapping, Optional, Union

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from semsearch.errors import ConfigurationError
from semsearch.provider.prompts import PromptsConfig

LOGGER = logging.getLogger(__name__)

APP_NAME = "semsearch"
DEFAULT_EMBEDDING_DEPLOYMENT = "text-embedding-ada-002"
DEFAULT_RERANK_DEPLOYMENT = "gpt-4.1-mini"
DEFAULT_API_VERSION = "2024-02-01"
DEFAULT_LOCAL_MODEL = "sentence-transformers/all-mpnet-base-v2"
COGNITIVE_SERVICES_SCOPE = "https://cognitiveservices.azure.com/.default"

ENV_ENDPOINT = "AZURE_OPENAI_ENDPOINT"
ENV_API_KEY = "AZURE_OPENAI_API_KEY"
ENV_API_VERSION = "AZURE_OPENAI_API_VERSION"
ENV_EMBED_DEPLOYMENT = "AZURE_OPENAI_EMBED_DEPLOYMENT"
ENV_RERANK_DEPLOYMENT = "AZURE_OPENAI_RERANK_DEPLOYMENT"
ENV_DEFAULT_DB = "SEMSEARCH_DEFAULT_DB"


def get_config_dir() -> Path:
    """Platform-appropriate directory holding config.json, .env and data/."""
    home = Path.home()
    if sys.platform == "win32":
        return Path(os.environ.get("APPDATA") or home / "AppData" / "Roaming") / APP_NAME
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / APP_NAME
    return Path(os.environ.get("XDG_CONFIG_HOME") or home / ".config") / APP_NAME


def get_default_db_path(config_dir: Path | None = None) -> Path:
    return (config_dir or get_config_dir()) / "data" / "index.db"


@dataclass(slots=True, frozen=True)
class ApiKeyCredential:
    api_key: str

    def __repr__(self) -> str:
        return "ApiKeyCredential(api_key='***')"


@dataclass(slots=True, frozen=True)
class ManagedIdentityCredential:
    scope: str = COGNITIVE_SERVICES_SCOPE


Credential = Union[ApiKeyCredential, ManagedIdentityCredential]


@dataclass(slots=True)
class AzureConfig:
    endpoint: str = ""
    embedding_deployment: str = DEFAULT_EMBEDDING_DEPLOYMENT
    rerank_deployment: str = DEFAULT_RERANK_DEPLOYMENT
    api_version: str = DEFAULT_API_VERSION


@dataclass(slots=True)
class AppConfig:
    azure: AzureConfig = field(default_factory=AzureConfig)
    credential: Credential = field(default_factory=ManagedIdentityCredential)
    db_path: Path | None = None
    max_chars: int = 50_000
    concurrency: int = 3
    top_k: int = 5
    min_similarity: float = 0.0
    min_score: float = 0.0
    candidate_multiplier: int = 3
    min_candidates: int = 10
    embedding_backend: Literal["azure", "local"] = "azure"
    local_model: str = DEFAULT_LOCAL_MODEL
    prompts: PromptsConfig = field(default_factory=PromptsConfig)

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = get_default_db_path()

    @property
    def auth_mode(self) -> str:
        return "api-key" if isinstance(self.credential, ApiKeyCredential) else "azure-ad"

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    def require_endpoint(self) -> str:
        if not self.azure.endpoint:
            raise ConfigurationError(
                f"Azure OpenAI endpoint is required. Set {ENV_ENDPOINT} or use the --endpoint option."
            )
        return self.azure.endpoint


class _Section(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EndpointsSection(_Section):
    azure: str = ""


class DeploymentsSection(_Section):
    embedding: Optional[str] = None
    rerank: Optional[str] = None


class StorageSection(_Section):
    default_database: Optional[str] = Field(default=None, alias="defaultDatabase")


class PromptsSection(_Section):
    summarization: Optional[str] = None
    rerank: Optional[str] = None


class ConfigFile(_Section):
    """Schema of ``config.json`` in the config directory."""

    version: str = "1"
    endpoints: EndpointsSection = Field(default_factory=EndpointsSection)
    deployments: DeploymentsSection = Field(default_factory=DeploymentsSection)
    storage: StorageSection = Field(default_factory=StorageSection)
    prompts: PromptsSection = Field(default_factory=PromptsSection)


def load_config_file(path: Path) -> ConfigFile | None:
    """Read ``config.json``; unreadable or invalid files are logged and ignored."""
    if not path.exists():
        return None
    try:
        return ConfigFile.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        LOGGER.warning("Ignoring invalid config file %s: %s", path, exc)
        return None


def load_env_file(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    return {key: value for key, value in dotenv_values(path).items() if value is not None}


def load_config(
    *,
    config_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
    endpoint: str | None = None,
    api_key: str | None = None,
    embedding_deployment: str | None = None,
    rerank_deployment: str | None = None,
    db_path: Path | None = None,
    **overrides: Any,
) -> AppConfig:
    """Build an :class:`AppConfig` from overrides, environment, ``.env`` and ``config.json``.

    Explicit arguments win over the process environment, which wins over the
    ``.env`` file, which wins over ``config.json``. The credential is decided
    here, once: an API key anywhere in those sources selects key
    authentication, otherwise managed identity is used.
    """
    config_dir = config_dir or get_config_dir()
    environ = os.environ if environ is None else environ
    env_file = load_env_file(config_dir / ".env")
    file_config = load_config_file(config_dir / "config.json") or ConfigFile()

    def pick(explicit: str | None, env_key: str, file_value: str | None) -> str | None:
        return explicit or environ.get(env_key) or env_file.get(env_key) or file_value

    azure = AzureConfig(
        endpoint=pick(endpoint, ENV_ENDPOINT, file_config.endpoints.azure) or "",
        embedding_deployment=pick(
            embedding_deployment, ENV_EMBED_DEPLOYMENT, file_config.deployments.embedding
        )
        or DEFAULT_EMBEDDING_DEPLOYMENT,
        rerank_deployment=pick(
            rerank_deployment, ENV_RERANK_DEPLOYMENT, file_config.deployments.rerank
        )
        or DEFAULT_RERANK_DEPLOYMENT,
        api_version=pick(None, ENV_API_VERSION, None) or DEFAULT_API_VERSION,
    )

    key = pick(api_key, ENV_API_KEY, None)
    credential: Credential = ApiKeyCredential(key) if key else ManagedIdentityCredential()

    resolved_db = db_path or pick(None, ENV_DEFAULT_DB, file_config.storage.default_database)

    prompts = PromptsConfig()
    if file_config.prompts.summarization:
        prompts.summarization = file_config.prompts.summarization
    if file_config.prompts.rerank:
        prompts.rerank = file_config.prompts.rerank

    config = AppConfig(
        azure=azure,
        credential=credential,
        db_path=Path(resolved_db) if resolved_db else get_default_db_path(config_dir),
        prompts=prompts,
    )

    known = {f.name for f in fields(AppConfig)}
    unknown = set(overrides) - known
    if unknown:
        raise TypeError(f"Unknown configuration options: {', '.join(sorted(unknown))}")
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})
