"""Application services for the LNURL flows."""

from .auth_service import AuthService
from .channel_service import ChannelService
from .payment_executor import PaymentExecutor
from .withdraw_service import WithdrawService

__all__ = [
    "AuthService",
    "ChannelService",
    "PaymentExecutor",
    "WithdrawService",
]
