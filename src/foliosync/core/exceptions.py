"""
FolioSync 自定义异常

提供层次化的异常类，用于精确的错误处理。

传播策略:
- AuthorizationError: 整个同步过程中止 (后续调用必然同样失败)
- RequestError / UnsupportedTransactionError: 仅影响单个操作，记录后跳过
- TransientError: 重试预算耗尽，推迟到下一轮同步
"""

from typing import Optional


class FolioSyncError(Exception):
    """FolioSync 基础异常类"""

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class AuthorizationError(FolioSyncError):
    """认证/授权错误 (401/403)，对当前同步过程是致命的"""

    def __init__(self, message: str, url: str = "", status: Optional[int] = None):
        super().__init__(message, code="AUTH_ERROR")
        self.url = url
        self.status = status


class RequestError(FolioSyncError):
    """远端拒绝的请求 (参数错误等)，不重试"""

    def __init__(
        self,
        message: str,
        url: str = "",
        status: Optional[int] = None,
        method: str = "",
    ):
        super().__init__(message, code="REQUEST_ERROR")
        self.url = url
        self.status = status
        self.method = method


class TransientError(FolioSyncError):
    """瞬时错误，重试预算耗尽后抛出"""

    def __init__(
        self,
        message: str,
        url: str = "",
        status: Optional[int] = None,
        attempts: int = 0,
    ):
        super().__init__(message, code="TRANSIENT_ERROR")
        self.url = url
        self.status = status
        self.attempts = attempts


class UnsupportedTransactionError(FolioSyncError):
    """无法映射为任何远端操作的交易"""

    def __init__(self, message: str, source_key: str = "", kind: str = ""):
        super().__init__(message, code="UNSUPPORTED_TRANSACTION")
        self.source_key = source_key
        self.kind = kind


class ValidationError(FolioSyncError):
    """参数验证错误"""

    def __init__(self, message: str, field: str = ""):
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field
