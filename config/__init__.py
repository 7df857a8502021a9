"""
config/__init__.py

Runtime configuration for the conversation router.

Importing this package:
1. loads ``.env`` into the process environment,
2. reads ``config.json`` into the module-level ``CONFIG`` dictionary and derives absolute paths,
3. loads the system prompt files that sit next to ``config.json``,
4. validates the result (missing API key, model or malformed section raises at import),
5. configures application logging.

Values that operators commonly override per deployment (log level, store and
gateway backends) are read through `get_config_value`, where an environment
variable beats config.json, which beats the code default.
"""

import os
import json
import logging
from pathlib import Path
from dotenv import load_dotenv
from .logging_config import setup_app_logging

# Load environment variables from .env file
load_dotenv()

CONFIG_DIR = Path(__file__).parent
PROJECT_ROOT = CONFIG_DIR.parent

with open(CONFIG_DIR / 'config.json', 'r', encoding='utf-8') as f:
    CONFIG = json.load(f)

CONFIG['project_root'] = str(PROJECT_ROOT)
CONFIG.setdefault('paths', {})

state_base_name = CONFIG['paths'].get('state_base_dir_name', 'conversation_data')
checkpoints_subdir_name = CONFIG['paths'].get('checkpoints_subdir_name', 'checkpoints')
CONFIG['paths']['state_full_path'] = str(PROJECT_ROOT / state_base_name)
CONFIG['paths']['checkpoints_full_path'] = str(PROJECT_ROOT / state_base_name / checkpoints_subdir_name)

# --- System Prompt Loading ---
# CONFIG key -> (file name, required). Optional prompts fall back to the
# general assistant prompt so that a partial deployment still answers.
PROMPT_FILES = {
    'router_message': ('router_system_prompt.txt', True),
    'general_assistant_message': ('general_assistant_system_prompt.txt', True),
    'domain_specialist_message': ('domain_specialist_system_prompt.txt', False),
    'output_structuring_message': ('output_structuring_system_prompt.txt', False),
    'language_detection_message': ('language_detection_system_prompt.txt', False),
    'error_localization_message': ('error_localization_system_prompt.txt', False),
}


def _read_prompt(filename: str):
    try:
        with open(CONFIG_DIR / filename, 'r', encoding='utf-8') as f:
            return f.read().strip()
    except FileNotFoundError:
        return None


for config_key, (filename, required) in PROMPT_FILES.items():
    prompt = _read_prompt(filename)
    if prompt is None and required:
        raise FileNotFoundError(
            f"System prompt file not found: {CONFIG_DIR / filename}\n"
            f"Please ensure {filename} exists in the config directory."
        )
    CONFIG[config_key] = prompt

for config_key in PROMPT_FILES:
    if CONFIG[config_key] is None:
        CONFIG[config_key] = CONFIG['general_assistant_message']

# Environment variables
ENV = {
    'LLM_API_KEY': os.getenv('LLM_API_KEY') or os.getenv('NEBIUS_API_KEY') or os.getenv('OPENAI_API_KEY'),
}

REQUIRED_MODELS = ['routing', 'general_assistant', 'domain_specialist', 'output_structuring', 'language_detection']
CONTEXT_STORE_BACKENDS = ('memory', 'file')
CHANNEL_GATEWAY_BACKENDS = ('recording', 'http')


def validate_config():
    """Validate that all required environment variables and configuration settings are present.

    Only the LLM section is strictly required. The channel gateway, the profile
    store and the checkpoint store have in-process defaults, so their sections
    are optional, but when present their backend names must be known ones.

    Raises:
        EnvironmentError: When no LLM API key is set.
        ValueError: When a required section or model is missing, or a section holds an invalid value.
    """
    missing_env_vars = [key for key, value in ENV.items() if value is None]
    if missing_env_vars:
        raise EnvironmentError(
            f"Missing required environment variables: {', '.join(missing_env_vars)}\n"
            f"Please check your .env file."
        )

    if 'llm' not in CONFIG:
        raise ValueError("Missing configuration for service: llm")

    missing_models = [model for model in REQUIRED_MODELS if model not in CONFIG['llm'].get('models', {})]
    if missing_models:
        raise ValueError(f"Missing configuration for LLM model(s): {', '.join(missing_models)}")

    max_steps = CONFIG.get('workflow', {}).get('max_steps', 12)
    if not isinstance(max_steps, int) or max_steps < 1:
        raise ValueError(f"workflow.max_steps must be a positive integer, got {max_steps!r}")

    store_backend = CONFIG.get('context_store', {}).get('backend', 'file')
    if store_backend not in CONTEXT_STORE_BACKENDS:
        raise ValueError(f"context_store.backend must be one of {CONTEXT_STORE_BACKENDS}, got {store_backend!r}")

    gateway_backend = CONFIG.get('channel_gateway', {}).get('backend', 'recording')
    if gateway_backend not in CHANNEL_GATEWAY_BACKENDS:
        raise ValueError(
            f"channel_gateway.backend must be one of {CHANNEL_GATEWAY_BACKENDS}, got {gateway_backend!r}"
        )


# Validate configuration on module import
validate_config()


def _coerce_env_value(env_value: str, default_value):
    """Convert an environment string to the type of ``default_value`` when it is a bool, int or float."""
    if isinstance(default_value, bool):
        if env_value.lower() in ('true', '1', 'yes'):
            return True
        if env_value.lower() in ('false', '0', 'no'):
            return False
        return default_value
    if isinstance(default_value, (int, float)):
        try:
            return type(default_value)(env_value)
        except ValueError:
            return None
    return env_value


def get_config_value(json_keys: list, env_var_name: str, default_value: any = None):
    """
    Retrieves a configuration value.

    Priority:
    1. Environment variable (if env_var_name is provided, set, and convertible to the default's type).
    2. Value from CONFIG dictionary (following json_keys).
    3. default_value.

    Args:
        json_keys (list): Path into CONFIG, e.g. ``['context_store', 'backend']``.
        env_var_name (str): Environment variable that overrides the JSON value, or None.
        default_value (any): Returned when neither source has a value; also drives type coercion.
    """
    if env_var_name:
        env_value = os.getenv(env_var_name)
        if env_value is not None:
            coerced = _coerce_env_value(env_value, default_value)
            if coerced is not None:
                return coerced

    current_level = CONFIG
    try:
        for key in json_keys:
            current_level = current_level[key]
    except (KeyError, TypeError):
        return default_value
    return current_level


# --- Logging Configuration ---
CONFIG['logging'] = {
    'level': get_config_value(['logging', 'level'], 'LOG_LEVEL', 'INFO'),
    'json': get_config_value(['logging', 'json'], 'LOG_JSON', True),
    'file_path': get_config_value(['logging', 'file_path'], 'LOG_FILE_PATH', 'logs/conversation_router.log'),
    'max_bytes': get_config_value(['logging', 'max_bytes'], 'LOG_MAX_BYTES', 5 * 1024 * 1024),
    'backup_count': get_config_value(['logging', 'backup_count'], 'LOG_BACKUP_COUNT', 3),
    'date_format': get_config_value(['logging', 'date_format'], 'LOG_DATE_FORMAT', '%Y-%m-%d %H:%M:%S'),
}

setup_app_logging(config=CONFIG['logging'])

config_init_logger = logging.getLogger(__name__)
config_init_logger.info("[config_init] Logging initialized from config/__init__.py using setup_app_logging.\n")
