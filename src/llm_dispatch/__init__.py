from .client import DispatchClient, create_client_from_env
from .config import DispatchConfig, load_config
from .contracts import CompletionResult, FunctionCall, FunctionSpec, RequestOptions, Turn, Usage
from .errors import (
    AuthenticationError,
    ConfigurationError,
    DispatchError,
    ErrorKind,
    OverloadedError,
    ProviderError,
    RateLimitError,
    TransientServiceError,
    UpstreamProtocolError,
)

__all__ = [
    "AuthenticationError",
    "CompletionResult",
    "ConfigurationError",
    "DispatchClient",
    "DispatchConfig",
    "DispatchError",
    "ErrorKind",
    "FunctionCall",
    "FunctionSpec",
    "OverloadedError",
    "ProviderError",
    "RateLimitError",
    "RequestOptions",
    "TransientServiceError",
    "Turn",
    "UpstreamProtocolError",
    "Usage",
    "create_client_from_env",
    "load_config",
]
