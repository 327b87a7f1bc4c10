"""Domain value objects for the LNURL flows.

Value objects are immutable (frozen dataclasses) and compare by value.
"""

import ipaddress
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime

import coincurve

from ..exceptions import ValidationError

# Fixed flow parameters. Channel size and fee policy are intentionally not configurable.
CHANNEL_FUNDING_SAT = 100_000
WITHDRAW_DEFAULT_DESCRIPTION = "Withdrawal from service"
WITHDRAW_MAX_FEE_PERCENT = 1.0
WITHDRAW_RETRY_FOR_SECONDS = 60
CLIENT_INVOICE_EXPIRY_SECONDS = 600
CLIENT_INVOICE_DESCRIPTION = "LNURL withdraw"


@dataclass(frozen=True)
class ChallengeToken:
    """Single-use challenge (``k1``) binding a request step to its callback.

    Every flow uses the same generation contract: 32 random bytes, hex encoded.
    Tokens received from callers are wrapped as-is; whether they are valid is
    decided solely by the token store.
    """

    value: str

    NUM_BYTES = 32

    @classmethod
    def generate(cls) -> "ChallengeToken":
        return cls(secrets.token_hex(cls.NUM_BYTES))

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class NodePublicKey:
    """Compressed secp256k1 node public key."""

    hex: str

    SERIALIZED_SIZE = 33
    HEX_LENGTH = SERIALIZED_SIZE * 2

    @classmethod
    def parse(cls, raw: str) -> "NodePublicKey":
        """Parse and validate a hex encoded compressed public key.

        Raises:
            ValueError: with a human-readable parse detail
        """
        try:
            data = bytes.fromhex(raw)
        except ValueError:
            raise ValueError("not a hex string") from None
        if len(data) != cls.SERIALIZED_SIZE:
            raise ValueError(
                f"expected {cls.SERIALIZED_SIZE} bytes ({cls.HEX_LENGTH} hex characters), "
                f"got {len(data)} bytes"
            )
        try:
            key = coincurve.PublicKey(data)
        except ValueError as e:
            raise ValueError(f"not a valid secp256k1 point: {e}") from None
        return cls(key.format(compressed=True).hex())

    def __str__(self) -> str:
        return self.hex


@dataclass(frozen=True)
class NodeAddress:
    """Network address a node listens on."""

    host: str
    port: int

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")

    @classmethod
    def parse(cls, raw: str) -> "NodeAddress":
        """Parse ``host:port`` or ``[ipv6]:port``."""
        if raw.startswith("["):
            host, sep, port = raw[1:].partition("]:")
        else:
            host, sep, port = raw.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"Invalid node address: {raw}")
        return cls(host=host, port=int(port))

    def __str__(self) -> str:
        try:
            if ipaddress.ip_address(self.host).version == 6:
                return f"[{self.host}]:{self.port}"
        except ValueError:
            pass
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class NodeIdentity:
    """A node's public key plus its advertised address.

    Built once at startup and handed to every flow handler.
    """

    pubkey: NodePublicKey
    address: NodeAddress

    @property
    def uri(self) -> str:
        """``<pubkey>@<host>:<port>`` as used by ``connect``."""
        return f"{self.pubkey}@{self.address}"

    @classmethod
    def from_uri(cls, uri: str) -> "NodeIdentity":
        pubkey, sep, address = uri.partition("@")
        if not sep:
            raise ValueError(f"Invalid node URI: {uri}")
        return cls(pubkey=NodePublicKey.parse(pubkey), address=NodeAddress.parse(address))


@dataclass(frozen=True)
class AmountBounds:
    """Inclusive withdrawable range in millisatoshis.

    The same instance is advertised by the request step and enforced by the
    callback, so the two can never disagree.
    """

    min_msat: int
    max_msat: int

    def __post_init__(self) -> None:
        if self.min_msat <= 0:
            raise ValueError(f"Minimum must be positive, got {self.min_msat}")
        if self.max_msat < self.min_msat:
            raise ValueError("Maximum must not be below minimum")

    def __contains__(self, amount_msat: int) -> bool:
        return self.min_msat <= amount_msat <= self.max_msat

    def check(self, amount_msat: int | None) -> int:
        """Return ``amount_msat`` if acceptable, otherwise raise naming the violated bound."""
        if amount_msat is None:
            raise ValidationError("Invoice has no amount", field="pr", constraint="amount")
        if amount_msat < self.min_msat:
            raise ValidationError(
                f"Amount {amount_msat} msat below minimum {self.min_msat} msat",
                field="pr",
                value=amount_msat,
                constraint="minWithdrawable",
            )
        if amount_msat > self.max_msat:
            raise ValidationError(
                f"Amount {amount_msat} msat exceeds maximum {self.max_msat} msat",
                field="pr",
                value=amount_msat,
                constraint="maxWithdrawable",
            )
        return amount_msat


WITHDRAW_BOUNDS = AmountBounds(min_msat=1_000, max_msat=1_000_000)


# ============================================================================
# SIGNATURES
# ============================================================================


@dataclass(frozen=True)
class ZBaseSignature:
    """Recoverable message signature in Core Lightning's zbase32 encoding.

    This is the only encoding ``checkmessage`` accepts.
    """

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MessageSignature:
    """Result of ``signmessage``: one signature, two serialisations.

    ``der`` is the hex signature (without recovery id) and is not a valid
    input for verification. Send ``zbase``.
    """

    der: str
    recid: str
    zbase: ZBaseSignature


# ============================================================================
# NODE OPERATION RESULTS
# ============================================================================


@dataclass(frozen=True)
class NodeInfo:
    """Subset of ``getinfo`` used by the flows."""

    pubkey: NodePublicKey
    alias: str | None = None
    addresses: tuple[NodeAddress, ...] = ()


@dataclass(frozen=True)
class FundChannelResult:
    """Funding transaction details returned by ``fundchannel``."""

    channel_id: str
    outnum: int
    tx: str
    txid: str
    mindepth: int | None = None


@dataclass(frozen=True)
class DecodedInvoice:
    """Fields of a decoded BOLT-11 invoice relevant to withdrawals."""

    amount_msat: int | None
    payment_hash: str | None = None
    description: str | None = None
    payee: str | None = None


@dataclass(frozen=True)
class CreatedInvoice:
    """An invoice created on the local node."""

    label: str
    bolt11: str
    payment_hash: str
    expires_at: int

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, UTC)


@dataclass(frozen=True)
class InvoiceSettlement:
    """Outcome of ``waitinvoice``."""

    label: str
    status: str
    amount_received_msat: int | None = None
    paid_at: int | None = None

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of ``pay``."""

    payment_hash: str
    status: str
    amount_msat: int | None = None
    amount_sent_msat: int | None = None
    payment_preimage: str | None = None

    @property
    def fee_msat(self) -> int | None:
        if self.amount_msat is None or self.amount_sent_msat is None:
            return None
        return self.amount_sent_msat - self.amount_msat


# ============================================================================
# FLOW REQUESTS
# ============================================================================


@dataclass(frozen=True)
class ChannelOpenRequest:
    """Parameters of the ``open-channel`` callback."""

    remote_id: str
    token: ChallengeToken
    private: bool = False


@dataclass(frozen=True)
class WithdrawRequest:
    """Parameters of the ``withdraw`` callback. The amount comes from the invoice."""

    token: ChallengeToken
    invoice: str


@dataclass(frozen=True)
class AuthAssertion:
    """Parameters of the ``auth-response`` callback."""

    token: ChallengeToken
    signature: ZBaseSignature
    pubkey: str


@dataclass(frozen=True)
class PaymentJob:
    """Accepted withdrawal waiting to be paid."""

    invoice: str
    amount_msat: int
    max_fee_percent: float = WITHDRAW_MAX_FEE_PERCENT
    retry_for_seconds: int = WITHDRAW_RETRY_FOR_SECONDS
    accepted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def max_fee_msat(self) -> int:
        return int(self.amount_msat * self.max_fee_percent / 100)
