"""Exception hierarchy shared by the builder, the gate and storage."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ZeroKeyError(Exception):
    """Base error carrying a stable ``code`` and a context mapping."""

    code = "ZEROKEY_ERROR"

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


# -- builder ---------------------------------------------------------------
class ValidationError(ZeroKeyError, ValueError):
    """Caller supplied malformed input to the proposal builder."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, field: Optional[str] = None, value: Any = None) -> None:
        super().__init__(message, context={"field": field, "value": value})
        self.field = field
        self.value = value


class InvalidAddressError(ValidationError):
    code = "INVALID_ADDRESS"

    def __init__(self, field: str, value: Any = None) -> None:
        super().__init__(f"Invalid {field}", field=field, value=value)


class InvalidChainIdError(ValidationError):
    code = "INVALID_CHAIN_ID"

    def __init__(self, value: Any = None) -> None:
        super().__init__("Invalid chain ID", field="chain id", value=value)


class ArgumentEncodingError(ValidationError):
    """An argument could not be ABI-encoded."""

    code = "ARGUMENT_ENCODING_ERROR"

    def __init__(self, message: str, *, index: Optional[int] = None, value: Any = None) -> None:
        super().__init__(message, field="constructor argument" if index is None else f"argument {index}", value=value)
        self.index = index


class UnsupportedArgumentTypeError(ArgumentEncodingError):
    code = "UNSUPPORTED_ARGUMENT_TYPE"

    def __init__(self, value: Any, *, index: Optional[int] = None) -> None:
        super().__init__(
            f"Unsupported argument type: {type(value).__name__}",
            index=index,
            value=repr(value),
        )


# -- gate ------------------------------------------------------------------
class GateError(ZeroKeyError, RuntimeError):
    code = "GATE_ERROR"


class GateParameterError(GateError):
    code = "GATE_PARAMETER_ERROR"


class GateStateError(GateError):
    code = "GATE_STATE_ERROR"


class ConditionsNotMetError(GateError):
    """The gate correctly refused to sign."""

    code = "CONDITIONS_NOT_MET"

    def __init__(self, message: str, *, verification: Optional[Dict[str, bool]] = None) -> None:
        super().__init__(message, context={"verificationResults": dict(verification or {})})
        self.verification = dict(verification or {})


class SigningFailedError(GateError):
    """The custody network raised while producing the signature."""

    code = "SIGNING_FAILED"


# -- storage ---------------------------------------------------------------
class StorageError(ZeroKeyError):
    code = "STORAGE_ERROR"


# -- configuration ---------------------------------------------------------
class ConfigurationError(ZeroKeyError, RuntimeError):
    """A required setting or secret is missing."""

    code = "CONFIGURATION_ERROR"


__all__ = [
    "ArgumentEncodingError",
    "ConditionsNotMetError",
    "ConfigurationError",
    "GateError",
    "GateParameterError",
    "GateStateError",
    "InvalidAddressError",
    "InvalidChainIdError",
    "SigningFailedError",
    "StorageError",
    "UnsupportedArgumentTypeError",
    "ValidationError",
    "ZeroKeyError",
]
