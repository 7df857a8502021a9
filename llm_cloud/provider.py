"""
provider.py – Build and return a configured OpenAI-compatible client with provider routing.
-------------------------------------------------------------------------------------------
In the overall data-flow this file sits at the infrastructure layer. It is the
single place where the SDK for the external completion platform is initialised.

Provider routing follows CONFIG["llm"]["provider"]:
- "openai": OpenAI's official API with OPENAI_API_KEY
- "nebius": Nebius-compatible API with LLM_API_KEY or NEBIUS_API_KEY
- anything else raises ValueError

Validation happens at client creation time, not import time, so the module can
be imported in tests without secrets. Callers never build clients themselves;
they go through ``CompletionService`` which adds circuit breaking on top.
"""

import logging
import os
from typing import Dict, List, Tuple

from openai import OpenAI
from config import CONFIG

logger = logging.getLogger(__name__)

# Client creation is wrapped in a function instead of a module-level global so
# that importing this module has no side effects and tests can inject a fake.


def require_any_env(var_names: List[str]) -> Tuple[str, str]:
    """
    Check that at least one of the specified environment variables is present and non-empty.

    The function never logs the secret value itself, only the
    name of the variable that was found.

    Args:
        var_names (List[str]): Environment variable names to check, in order of preference.

    Returns:
        Tuple[str, str]: ``(selected_var_name, value)`` for the first variable that is set.

    Raises:
        RuntimeError: If none of the specified environment variables are present or are empty.
    """
    for var_name in var_names:
        value = os.getenv(var_name, "")
        if value:
            return var_name, value

    var_list = ", ".join(var_names)
    raise RuntimeError(
        f"Missing required environment variable. Set one of: {var_list}"
    )


_PROVIDER_ENV_VARS = {
    "nebius": ["LLM_API_KEY", "NEBIUS_API_KEY"],
    "openai": ["OPENAI_API_KEY", "LLM_API_KEY"],
}


def get_provider_name(config: Dict = None) -> str:
    """Return the normalized provider name configured under ``llm.provider``."""
    llm_config = (config or CONFIG).get("llm", {})
    return llm_config.get("provider", "openai").strip().lower()


def validate_env_for_provider(config: Dict) -> None:
    """
    Validate that required environment variables are present for the configured LLM provider.

    Args:
        config (Dict): The configuration dictionary with an 'llm' section.

    Raises:
        ValueError: If an unsupported provider is configured.
        RuntimeError: If the provider's API key variables are all missing.
    """
    provider = get_provider_name(config)
    logger.info("LLM provider selected: %s", provider)

    if provider not in _PROVIDER_ENV_VARS:
        raise ValueError(f"Unsupported LLM provider: {provider}")

    selected_var, _ = require_any_env(_PROVIDER_ENV_VARS[provider])
    logger.info("Using environment variable: %s", selected_var)


def get_client() -> OpenAI:
    """
    Build and return a configured OpenAI-compatible client for the selected provider.

    Returns:
        OpenAI: A ready-to-use client.

    Raises:
        RuntimeError: If required environment variables are missing.
        ValueError: If an unsupported provider is configured.
    """
    validate_env_for_provider(CONFIG)

    llm_config = CONFIG.get("llm", {})
    provider = get_provider_name(CONFIG)
    _, api_key = require_any_env(_PROVIDER_ENV_VARS[provider])

    if provider == "nebius":
        base_url = llm_config.get("base_url", "https://api.studio.nebius.com/v1/")
    else:
        base_url = "https://api.openai.com/v1"
    logger.info("LLM provider selected: %s | base_url=%s", provider, base_url)

    return OpenAI(
        base_url=base_url,
        api_key=api_key,
        timeout=llm_config.get("timeout", 30),  # seconds
    )
