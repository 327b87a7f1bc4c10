"""Domain events for the LNURL flows.

Withdraw payments run after the HTTP response has been sent, so these
events (and the logs) are the only place their outcome shows up.
"""

from dataclasses import dataclass

from ..core.events.base import BaseEvent


@dataclass(frozen=True)
class ChannelOpened(BaseEvent):
    """A channel funding transaction was broadcast for a remote node."""

    remote_id: str
    channel_id: str
    txid: str
    outnum: int
    announced: bool


@dataclass(frozen=True)
class WithdrawAccepted(BaseEvent):
    """A withdraw callback was accepted and queued for payment."""

    invoice: str
    amount_msat: int


@dataclass(frozen=True)
class WithdrawPaymentSucceeded(BaseEvent):
    """The payment for an accepted withdrawal completed."""

    invoice: str
    payment_hash: str
    amount_msat: int
    amount_sent_msat: int | None

    @property
    def fee_msat(self) -> int | None:
        if self.amount_sent_msat is None:
            return None
        return self.amount_sent_msat - self.amount_msat


@dataclass(frozen=True)
class WithdrawPaymentFailed(BaseEvent):
    """The payment for an accepted withdrawal failed."""

    invoice: str
    amount_msat: int
    reason: str


@dataclass(frozen=True)
class AuthVerified(BaseEvent):
    """A node proved control of its key by signing a challenge."""

    pubkey: str
