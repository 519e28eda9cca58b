"""MCP transport factory for stdio, streamable-http and sse servers."""

from __future__ import annotations

import os
import re
from typing import TYPE_CHECKING, Any, AsyncContextManager

if TYPE_CHECKING:
    from opencowork.mcp.types import MCPServerConfig

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def expand_env_vars(values: dict[str, str]) -> dict[str, str]:
    """Substitute `${VAR}` references from the process environment.

    Unset variables expand to an empty string.
    """
    return {
        key: _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
        for key, value in values.items()
    }


async def create_transport(
    config: MCPServerConfig,
) -> AsyncContextManager[tuple[Any, ...]]:
    """Create the transport context manager for a server.

    Returns:
        Async context manager yielding (read_stream, write_stream, ...)

    Raises:
        ValueError: If the transport is unknown or required fields are missing
    """
    if config.transport == "stdio":
        if not config.command:
            raise ValueError(f"stdio transport requires 'command' for server '{config.name}'")

        from mcp.client.stdio import StdioServerParameters, stdio_client

        merged_env = dict(os.environ)
        merged_env.update(expand_env_vars(config.env))

        params = StdioServerParameters(
            command=config.command,
            args=list(config.args),
            env=merged_env,
        )
        return stdio_client(params)

    headers = {k: v for k, v in expand_env_vars(config.headers).items() if v}

    if config.transport == "streamable-http":
        if not config.url:
            raise ValueError(f"streamable-http transport requires 'url' for server '{config.name}'")

        from mcp.client.streamable_http import streamablehttp_client

        return streamablehttp_client(config.url, headers=headers or None)

    if config.transport == "sse":
        if not config.url:
            raise ValueError(f"sse transport requires 'url' for server '{config.name}'")

        from mcp.client.sse import sse_client

        return sse_client(config.url, headers=headers or None, timeout=config.timeout)

    raise ValueError(f"Unknown transport: {config.transport}")
