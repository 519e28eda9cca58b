"""Configuration management for OpenCowork.

Provides layered YAML configuration:
- System-level config (/etc/opencowork/ or %PROGRAMDATA%)
- User-level config (~/.opencowork/ or %APPDATA%)
- Environment variable overrides (highest priority)

Example usage:
    from opencowork.config import get_config

    config = get_config()
    print(config.llm.active_provider)
    print(config.agent.max_iterations)
"""

from opencowork.config.loader import (
    dict_to_config,
    get_config,
    load_config,
    on_config_reload,
    reload_config,
    reset_config,
)
from opencowork.config.paths import (
    get_config_paths,
    get_system_config_path,
    get_user_config_path,
)
from opencowork.config.schema import (
    AgentConfig,
    Config,
    LLMConfig,
    LoggingConfig,
    MCPConfig,
    ProviderOverride,
    SkillsConfig,
    StorageConfig,
)
from opencowork.config.secrets import (
    clear_secret_cache,
    fetch_secret,
    resolve_api_key,
)

__all__ = [
    # Main API
    "Config",
    "load_config",
    "get_config",
    "reload_config",
    "reset_config",
    "on_config_reload",
    "dict_to_config",
    # Schema types
    "AgentConfig",
    "LLMConfig",
    "LoggingConfig",
    "MCPConfig",
    "ProviderOverride",
    "SkillsConfig",
    "StorageConfig",
    # Secrets
    "fetch_secret",
    "resolve_api_key",
    "clear_secret_cache",
    # Paths
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
]
