"""MCP OAuth Broker - brokers OAuth/PKCE between a browser and a remote MCP server."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("mcp-oauth-broker")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback for development

__all__ = [
    "__version__",
    "BrokerConfig",
    "load_config",
    "ConnectionBootstrapper",
    "SessionRegistry",
    "ToolInfo",
    "AuthenticatedTransport",
    "create_app",
]


# Lazy imports keep `mcp_oauth_broker.__version__` cheap for the CLI
def __getattr__(name: str) -> object:
    """Lazy import module components."""
    if name in ("BrokerConfig", "load_config"):
        from .config import BrokerConfig, load_config
        return {"BrokerConfig": BrokerConfig, "load_config": load_config}[name]
    elif name in ("ConnectionBootstrapper", "SessionRegistry", "ToolInfo"):
        from .connection import ConnectionBootstrapper, SessionRegistry, ToolInfo
        return {
            "ConnectionBootstrapper": ConnectionBootstrapper,
            "SessionRegistry": SessionRegistry,
            "ToolInfo": ToolInfo,
        }[name]
    elif name == "AuthenticatedTransport":
        from .transport import AuthenticatedTransport
        return AuthenticatedTransport
    elif name == "create_app":
        from .app import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
