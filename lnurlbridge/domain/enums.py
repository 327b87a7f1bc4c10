"""Domain enums for the LNURL flows."""

from enum import Enum


class LnurlTag(str, Enum):
    """``tag`` advertised in the first step of a flow."""

    CHANNEL_REQUEST = "channelRequest"  # LUD-02
    WITHDRAW_REQUEST = "withdrawRequest"  # LUD-03

    def __str__(self) -> str:
        return self.value


class ResponseStatus(str, Enum):
    """``status`` field of every callback response."""

    OK = "OK"
    ERROR = "ERROR"

    def __str__(self) -> str:
        return self.value


class AuthEvent(str, Enum):
    """``event`` reported by a successful auth response."""

    LOGGEDIN = "LOGGEDIN"

    def __str__(self) -> str:
        return self.value

