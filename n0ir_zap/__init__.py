__version__ = "0.1.0"

from n0ir_zap.core import BaseAdapter, ZapError
from n0ir_zap.zap.lifecycle import PositionLifecycleManager
from n0ir_zap.zap.types import CloseRequest, CloseResult, OpenRequest, OpenResult

__all__ = [
    "__version__",
    "BaseAdapter",
    "ZapError",
    "PositionLifecycleManager",
    "OpenRequest",
    "OpenResult",
    "CloseRequest",
    "CloseResult",
]
