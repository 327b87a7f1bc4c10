"""Requester side of the LNURL flows."""

from .driver import AuthOutcome, ChannelOutcome, LnurlClient, WithdrawOutcome

__all__ = ["AuthOutcome", "ChannelOutcome", "LnurlClient", "WithdrawOutcome"]
