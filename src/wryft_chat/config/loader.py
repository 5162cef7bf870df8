"""Load the client configuration from YAML.

The file may reference the environment as ``${NAME}`` or, with a fallback,
``${NAME:-default}``. Fields the file leaves out are filled from ``WRYFT_*``
variables by the settings model itself.
"""

import os
import re
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from .schema import ClientConfig

_ENV_REF = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}")

_SECURE_SCHEMES = {"https", "wss"}


def substitute_env_vars(text: str) -> str:
    """Expand ``${NAME}`` and ``${NAME:-default}`` references in ``text``.

    Raises:
        ValueError: A reference without a default names an unset variable.
    """

    def expand(match: re.Match[str]) -> str:
        name = match.group("name")
        value = os.environ.get(name, match.group("default"))
        if value is None:
            raise ValueError(f"Environment variable {name} not found")
        return value

    return _ENV_REF.sub(expand, text)


def _read_mapping(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(substitute_env_vars(path.read_text()))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def load_config(path: Path) -> ClientConfig:
    """Read, expand and validate the configuration at ``path``.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        ValueError: An environment reference is unresolved, the document is
            not a mapping, or the endpoints disagree on TLS.
        pydantic.ValidationError: The document does not match the schema.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    config = ClientConfig(**_read_mapping(path))
    validate_config(config)
    return config


def validate_config(config: ClientConfig) -> None:
    """Reject a REST API and gateway that disagree on transport security."""
    api_secure = urlparse(config.api.base_url).scheme in _SECURE_SCHEMES
    gateway_secure = urlparse(config.gateway.url).scheme in _SECURE_SCHEMES

    if api_secure != gateway_secure:
        raise ValueError(
            "API and gateway must both use TLS (https/wss) or both plaintext (http/ws)"
        )
