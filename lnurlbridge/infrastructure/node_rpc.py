"""Core Lightning JSON-RPC adapter.

The flows only depend on the :class:`NodeRpc` contract. :class:`ClnNodeRpc`
implements it on top of ``pyln-client``: each blocking RPC call runs in a
worker thread, and all calls on one adapter are serialised by a single
``asyncio.Lock``, so at most one node operation is in flight at a time.
"""

import asyncio
from pathlib import Path
from typing import Any

from pyln.client import LightningRpc, RpcError

from ..domain.value_objects import (
    CreatedInvoice,
    DecodedInvoice,
    FundChannelResult,
    InvoiceSettlement,
    MessageSignature,
    NodeAddress,
    NodeIdentity,
    NodeInfo,
    NodePublicKey,
    PaymentResult,
    ZBaseSignature,
)
from ..exceptions import ConfigurationError, NodeRpcConnectionError, NodeRpcError
from ..utils.logging import LogPerformance, get_logger

logger = get_logger(__name__)


class NodeRpc:
    """Node operations used by the LNURL flows."""

    async def get_info(self) -> NodeInfo:
        """Return this node's public key and announced addresses."""
        raise NotImplementedError("Subclasses must implement get_info")

    async def connect_peer(self, pubkey: NodePublicKey, address: NodeAddress) -> None:
        """Connect to a peer at ``address``."""
        raise NotImplementedError("Subclasses must implement connect_peer")

    async def fund_channel(
        self, peer: NodePublicKey, amount_sat: int, announce: bool
    ) -> FundChannelResult:
        """Open and fund a channel to a connected peer."""
        raise NotImplementedError("Subclasses must implement fund_channel")

    async def decode_invoice(self, invoice: str) -> DecodedInvoice:
        """Decode a BOLT-11 invoice."""
        raise NotImplementedError("Subclasses must implement decode_invoice")

    async def create_invoice(
        self, amount_msat: int, label: str, description: str, expiry_seconds: int
    ) -> CreatedInvoice:
        """Create an invoice on this node."""
        raise NotImplementedError("Subclasses must implement create_invoice")

    async def wait_invoice(self, label: str) -> InvoiceSettlement:
        """Suspend until the invoice is paid or expires."""
        raise NotImplementedError("Subclasses must implement wait_invoice")

    async def pay(
        self, invoice: str, max_fee_percent: float, retry_for_seconds: int
    ) -> PaymentResult:
        """Pay an invoice, retrying routes for up to ``retry_for_seconds``."""
        raise NotImplementedError("Subclasses must implement pay")

    async def sign_message(self, message: str) -> MessageSignature:
        """Sign ``message`` with the node key."""
        raise NotImplementedError("Subclasses must implement sign_message")

    async def verify_message(
        self, message: str, signature: ZBaseSignature, pubkey: NodePublicKey
    ) -> bool:
        """Check a zbase signature of ``message`` against ``pubkey``."""
        raise NotImplementedError("Subclasses must implement verify_message")


def _to_msat(value: Any) -> int | None:
    """Normalise the amount representations pyln-client may hand back."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    if hasattr(value, "millisatoshis"):
        return int(value.millisatoshis)
    if isinstance(value, str) and value.endswith("msat"):
        return int(value[: -len("msat")])
    return int(value)


def _rpc_error_message(error: RpcError) -> str:
    detail = getattr(error, "error", None)
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    return str(error)


class ClnNodeRpc(NodeRpc):
    """``NodeRpc`` backed by a Core Lightning unix socket."""

    def __init__(self, socket_path: Path | str | None = None, rpc: Any | None = None):
        """Initialize the adapter.

        Args:
            socket_path: Path to the ``lightning-rpc`` socket
            rpc: Pre-built client exposing ``call(method, payload)`` (tests)
        """
        if rpc is None:
            if socket_path is None:
                raise ConfigurationError("No RPC socket path given", setting="rpc_path")
            rpc = LightningRpc(str(Path(socket_path).expanduser()))
        self._rpc = rpc
        self._lock = asyncio.Lock()

    async def _call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            with LogPerformance(f"node_rpc_{method}", logger):
                try:
                    return await asyncio.to_thread(self._rpc.call, method, payload)
                except RpcError as e:
                    code = e.error.get("code") if isinstance(e.error, dict) else None
                    raise NodeRpcError(
                        _rpc_error_message(e), method=method, code=code, original_error=e
                    ) from e
                except OSError as e:
                    raise NodeRpcConnectionError(
                        f"Cannot reach node RPC socket: {e}", method=method, original_error=e
                    ) from e

    async def get_info(self) -> NodeInfo:
        result = await self._call("getinfo", {})
        addresses = tuple(
            NodeAddress(host=entry["address"], port=int(entry["port"]))
            for entry in result.get("address", [])
            if entry.get("address") and entry.get("port")
        )
        return NodeInfo(
            pubkey=NodePublicKey.parse(result["id"]),
            alias=result.get("alias"),
            addresses=addresses,
        )

    async def connect_peer(self, pubkey: NodePublicKey, address: NodeAddress) -> None:
        await self._call("connect", {"id": pubkey.hex, "host": address.host, "port": address.port})

    async def fund_channel(
        self, peer: NodePublicKey, amount_sat: int, announce: bool
    ) -> FundChannelResult:
        result = await self._call(
            "fundchannel", {"id": peer.hex, "amount": amount_sat, "announce": announce}
        )
        return FundChannelResult(
            channel_id=result["channel_id"],
            outnum=int(result["outnum"]),
            tx=result["tx"],
            txid=result["txid"],
            mindepth=result.get("mindepth"),
        )

    async def decode_invoice(self, invoice: str) -> DecodedInvoice:
        result = await self._call("decode", {"string": invoice})
        if result.get("valid") is False:
            raise NodeRpcError("Invoice failed validation", method="decode")
        return DecodedInvoice(
            amount_msat=_to_msat(result.get("amount_msat")),
            payment_hash=result.get("payment_hash"),
            description=result.get("description"),
            payee=result.get("payee"),
        )

    async def create_invoice(
        self, amount_msat: int, label: str, description: str, expiry_seconds: int
    ) -> CreatedInvoice:
        result = await self._call(
            "invoice",
            {
                "amount_msat": amount_msat,
                "label": label,
                "description": description,
                "expiry": expiry_seconds,
            },
        )
        return CreatedInvoice(
            label=label,
            bolt11=result["bolt11"],
            payment_hash=result["payment_hash"],
            expires_at=int(result["expires_at"]),
        )

    async def wait_invoice(self, label: str) -> InvoiceSettlement:
        result = await self._call("waitinvoice", {"label": label})
        return InvoiceSettlement(
            label=label,
            status=result.get("status", "unknown"),
            amount_received_msat=_to_msat(result.get("amount_received_msat")),
            paid_at=result.get("paid_at"),
        )

    async def pay(
        self, invoice: str, max_fee_percent: float, retry_for_seconds: int
    ) -> PaymentResult:
        result = await self._call(
            "pay",
            {
                "bolt11": invoice,
                "maxfeepercent": max_fee_percent,
                "retry_for": retry_for_seconds,
            },
        )
        return PaymentResult(
            payment_hash=result.get("payment_hash", ""),
            status=result.get("status", "unknown"),
            amount_msat=_to_msat(result.get("amount_msat")),
            amount_sent_msat=_to_msat(result.get("amount_sent_msat")),
            payment_preimage=result.get("payment_preimage"),
        )

    async def sign_message(self, message: str) -> MessageSignature:
        result = await self._call("signmessage", {"message": message})
        return MessageSignature(
            der=result["signature"],
            recid=result["recid"],
            zbase=ZBaseSignature(result["zbase"]),
        )

    async def verify_message(
        self, message: str, signature: ZBaseSignature, pubkey: NodePublicKey
    ) -> bool:
        if not isinstance(signature, ZBaseSignature):
            raise TypeError(
                f"checkmessage needs a ZBaseSignature, got {type(signature).__name__}"
            )
        result = await self._call(
            "checkmessage",
            {"message": message, "zbase": signature.value, "pubkey": pubkey.hex},
        )
        return bool(result.get("verified"))


async def load_node_identity(node_rpc: NodeRpc, node_address: str | None = None) -> NodeIdentity:
    """Build the node identity once at startup.

    Args:
        node_rpc: Adapter to query
        node_address: Advertised ``host:port``; defaults to the first address
            the node announces

    Raises:
        ConfigurationError: if no address is configured or announced
    """
    info = await node_rpc.get_info()
    if node_address:
        try:
            address = NodeAddress.parse(node_address)
        except ValueError as e:
            raise ConfigurationError(str(e), setting="node_address", expected="host:port") from e
    elif info.addresses:
        address = info.addresses[0]
    else:
        raise ConfigurationError(
            "Node announces no address; set LNURLBRIDGE_NODE_ADDRESS",
            setting="node_address",
            expected="host:port",
        )
    identity = NodeIdentity(pubkey=info.pubkey, address=address)
    logger.info("node_identity_loaded", uri=identity.uri, alias=info.alias)
    return identity
