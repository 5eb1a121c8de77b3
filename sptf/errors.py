"""Error taxonomy of the SPTF client.

Numeric server error codes are translated by :func:`classify` into an
:class:`ErrorCategory`. Every failure raised by this package is a
:class:`SptfError` carrying one of those categories, and every category has a
fixed user-facing message in each supported locale.
"""

from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ErrorCategory(str, Enum):
    NETWORK = "network"
    CONNECT_TIMEOUT = "connect_timeout"
    REQUEST_TIMEOUT = "request_timeout"
    PROTOCOL = "protocol"
    VALIDATION = "validation"
    INTERNAL_SERVER_ERROR = "internal_server_error"
    INVALID_CREDENTIALS = "invalid_credentials"
    COOKIE_EXPIRED = "cookie_expired"
    COOKIE_SET_FAILED = "cookie_set_failed"
    COOKIE_INVALID = "cookie_invalid"
    PERMISSION_DENIED = "permission_denied"
    MALFORMED_TRANSFER = "malformed_transfer"
    ALREADY_EXISTS = "already_exists"
    UNKNOWN = "unknown"


# code -> (category, English message, Chinese message)
ERROR_CODES: Dict[int, Tuple[ErrorCategory, str, str]] = {
    0x0: (ErrorCategory.INTERNAL_SERVER_ERROR, "internal server error", "服务器内部错误"),
    0x1: (ErrorCategory.INVALID_CREDENTIALS, "user does not exist", "用户不存在"),
    0x2: (ErrorCategory.INVALID_CREDENTIALS, "incorrect password", "密码不正确"),
    0x3: (ErrorCategory.COOKIE_EXPIRED, "cookie expired", "Cookie已过期"),
    0x4: (ErrorCategory.COOKIE_SET_FAILED, "failed to set cookie", "Cookie设置失败"),
    0x5: (ErrorCategory.COOKIE_INVALID, "cookie validation failed", "Cookie验证失败"),
    0x6: (ErrorCategory.PERMISSION_DENIED, "insufficient permission", "您的权限不够"),
    0x7: (ErrorCategory.MALFORMED_TRANSFER, "malformed file transfer", "文件传输格式错误"),
    0x8: (ErrorCategory.ALREADY_EXISTS, "username already exists", "用户名已存在"),
}

MESSAGES: Dict[str, Dict[ErrorCategory, str]] = {
    "en": {
        ErrorCategory.NETWORK: "network error",
        ErrorCategory.CONNECT_TIMEOUT: "connection failed",
        ErrorCategory.REQUEST_TIMEOUT: "the server did not answer in time",
        ErrorCategory.PROTOCOL: "unexpected response from server",
        ErrorCategory.VALIDATION: "invalid input",
        ErrorCategory.INTERNAL_SERVER_ERROR: "internal server error",
        ErrorCategory.INVALID_CREDENTIALS: "invalid username or password",
        ErrorCategory.COOKIE_EXPIRED: "cookie expired",
        ErrorCategory.COOKIE_SET_FAILED: "failed to set cookie",
        ErrorCategory.COOKIE_INVALID: "cookie validation failed",
        ErrorCategory.PERMISSION_DENIED: "insufficient permission",
        ErrorCategory.MALFORMED_TRANSFER: "malformed file transfer",
        ErrorCategory.ALREADY_EXISTS: "username already exists",
        ErrorCategory.UNKNOWN: "unknown error",
    },
    "zh": {
        ErrorCategory.NETWORK: "网络错误",
        ErrorCategory.CONNECT_TIMEOUT: "连接失败",
        ErrorCategory.REQUEST_TIMEOUT: "服务器响应超时",
        ErrorCategory.PROTOCOL: "服务器响应格式错误",
        ErrorCategory.VALIDATION: "输入不合法",
        ErrorCategory.INTERNAL_SERVER_ERROR: "服务器内部错误",
        ErrorCategory.INVALID_CREDENTIALS: "用户名或密码错误",
        ErrorCategory.COOKIE_EXPIRED: "Cookie已过期",
        ErrorCategory.COOKIE_SET_FAILED: "Cookie设置失败",
        ErrorCategory.COOKIE_INVALID: "Cookie验证失败",
        ErrorCategory.PERMISSION_DENIED: "您的权限不够",
        ErrorCategory.MALFORMED_TRANSFER: "文件传输格式错误",
        ErrorCategory.ALREADY_EXISTS: "用户名已存在",
        ErrorCategory.UNKNOWN: "未知错误",
    },
}

# Categories that mean the stored credential is no longer usable.
AUTH_FAILURES = frozenset({
    ErrorCategory.INVALID_CREDENTIALS,
    ErrorCategory.COOKIE_EXPIRED,
    ErrorCategory.COOKIE_SET_FAILED,
    ErrorCategory.COOKIE_INVALID,
})


def _as_code(code: Any) -> Optional[int]:
    # bool is an int subclass but never a valid code
    if isinstance(code, bool) or not isinstance(code, int):
        return None
    return code


def classify(code: Any) -> ErrorCategory:
    """Map a server error code to its category; anything unmapped is UNKNOWN."""
    value = _as_code(code)
    if value is None or value not in ERROR_CODES:
        return ErrorCategory.UNKNOWN
    return ERROR_CODES[value][0]


def category_message(category: ErrorCategory, locale: str = "en") -> str:
    table = MESSAGES.get(locale, MESSAGES["en"])
    return table.get(category, table[ErrorCategory.UNKNOWN])


def code_message(code: Any, locale: str = "en") -> str:
    value = _as_code(code)
    if value is None or value not in ERROR_CODES:
        return category_message(ErrorCategory.UNKNOWN, locale)
    _category, english, chinese = ERROR_CODES[value]
    return chinese if locale == "zh" else english


class SptfError(RuntimeError):
    category = ErrorCategory.UNKNOWN

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail
        super().__init__(detail or self.user_message())

    def user_message(self, locale: str = "en") -> str:
        return category_message(self.category, locale)


class NetworkError(SptfError):
    """The transport never produced a response."""

    category = ErrorCategory.NETWORK


class ConnectTimeout(SptfError):
    category = ErrorCategory.CONNECT_TIMEOUT


class RequestTimeout(SptfError):
    category = ErrorCategory.REQUEST_TIMEOUT


class ProtocolError(SptfError):
    """Response bytes did not parse as the expected envelope."""

    category = ErrorCategory.PROTOCOL


class ValidationError(SptfError):
    category = ErrorCategory.VALIDATION


class UnknownError(SptfError):
    category = ErrorCategory.UNKNOWN


class ServerError(SptfError):
    """Error reported by the server through a numeric code."""

    def __init__(self, code: Any) -> None:
        self.code = code
        self.category = classify(code)
        super().__init__(code_message(code))

    def user_message(self, locale: str = "en") -> str:
        return code_message(self.code, locale)

    def __repr__(self) -> str:
        return f"ServerError(code={self.code!r}, category={self.category.value})"
