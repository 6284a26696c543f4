"""
FolioSync

将券商/交易所导出文件中的交易同步到远端投资组合账本 (Ghostfolio)。
"""

__version__ = "1.0.0"
__author__ = "FolioSync Team"

# Lazy imports to avoid circular dependencies
def __getattr__(name):
    if name == "gateway":
        from . import gateway
        return gateway
    elif name == "model":
        from . import model
        return model
    elif name == "sync":
        from . import sync
        return sync
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    "__version__",
    "gateway",
    "model",
    "sync",
]
