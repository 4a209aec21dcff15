from n0ir_zap.core.adapters.BaseAdapter import BaseAdapter
from n0ir_zap.core.errors import (
    AuthorizationError,
    BoundsError,
    ConfigurationError,
    MarketError,
    ValidationError,
    ZapError,
)

__all__ = [
    "AuthorizationError",
    "BaseAdapter",
    "BoundsError",
    "ConfigurationError",
    "MarketError",
    "ValidationError",
    "ZapError",
]
