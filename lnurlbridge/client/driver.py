"""Client driver performing the requester side of each LNURL flow.

Each flow is strictly sequential: the first failing step aborts the flow.
HTTP failures raise :class:`ClientTransportError`, node failures raise
:class:`NodeRpcError`, and a protocol-level ``ERROR`` answer from the
server is returned to the caller inside the outcome.
"""

import time
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from lnurlbridge.domain.schemas import (
    AuthChallengeResponse,
    AuthResultResponse,
    ChannelRequestResponse,
    OpenChannelResponse,
    StatusResponse,
    WithdrawRequestResponse,
)
from lnurlbridge.domain.value_objects import (
    CLIENT_INVOICE_DESCRIPTION,
    CLIENT_INVOICE_EXPIRY_SECONDS,
    CreatedInvoice,
    InvoiceSettlement,
    NodeAddress,
    NodeIdentity,
    NodePublicKey,
)
from lnurlbridge.exceptions import ClientTransportError, ConfigurationError
from lnurlbridge.infrastructure.node_rpc import NodeRpc
from lnurlbridge.utils.logging import get_logger

logger = get_logger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


@dataclass(frozen=True)
class ChannelOutcome:
    request: ChannelRequestResponse
    response: OpenChannelResponse

    @property
    def ok(self) -> bool:
        return self.response.ok


@dataclass(frozen=True)
class WithdrawOutcome:
    request: WithdrawRequestResponse
    invoice: CreatedInvoice
    response: StatusResponse
    settlement: InvoiceSettlement | None = None

    @property
    def ok(self) -> bool:
        return self.response.ok


@dataclass(frozen=True)
class AuthOutcome:
    pubkey: NodePublicKey
    response: AuthResultResponse

    @property
    def ok(self) -> bool:
        return self.response.ok


def remote_id_from_uri(uri: str) -> str:
    """Cut ``<pubkey>@<host>:<port>`` down to the bare hex public key."""
    return uri[: NodePublicKey.HEX_LENGTH]


class LnurlClient:
    """Runs the requester side of the channel, withdraw and auth flows."""

    def __init__(
        self,
        node_rpc: NodeRpc,
        http: httpx.AsyncClient,
        node_address: str | None = None,
    ):
        """Initialize the driver.

        Args:
            node_rpc: Adapter for the requester's own node
            http: HTTP client used for every round-trip
            node_address: This node's ``host:port`` for logs (channel flow only;
                defaults to the first address the node announces)
        """
        self.node_rpc = node_rpc
        self.http = http
        self.node_address = node_address

    async def _get(
        self, url: str, model: type[ResponseT], params: dict[str, Any] | None = None
    ) -> ResponseT:
        """GET ``url`` and parse the JSON body into ``model``.

        LNURL servers report protocol errors with a 4xx/5xx status and a
        ``{status, reason}`` body, so the body is parsed regardless of the
        status code. Status-bearing models accept such a body directly; for
        the others it is a transport-level failure.
        """
        try:
            response = await self.http.get(url, params=params)
        except httpx.HTTPError as e:
            raise ClientTransportError(
                f"Request to {url} failed: {e}", url=url, original_error=e
            ) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise ClientTransportError(
                f"Non-JSON response from {url}",
                url=url,
                status_code=response.status_code,
                original_error=e,
            ) from e

        try:
            return model.model_validate(payload)
        except PydanticValidationError as e:
            reason = payload.get("reason") if isinstance(payload, dict) else None
            message = (
                f"Server rejected request: {reason}"
                if reason
                else f"Unexpected response from {url}"
            )
            raise ClientTransportError(
                message, url=url, status_code=response.status_code, original_error=e
            ) from e

    @staticmethod
    def _endpoint(base_url: str, name: str) -> str:
        return f"{base_url.rstrip('/')}/{name}"

    # =========================================================================
    # Channel request (LUD-02)
    # =========================================================================

    async def _own_uri(self) -> str:
        """This node's ``pubkey@host:port``, or the bare pubkey when unreachable.

        A wallet behind NAT announces no address; only the key is sent.
        """
        info = await self.node_rpc.get_info()
        if self.node_address:
            try:
                address = NodeAddress.parse(self.node_address)
            except ValueError as e:
                raise ConfigurationError(
                    str(e), setting="node_address", expected="host:port"
                ) from e
        elif info.addresses:
            address = info.addresses[0]
        else:
            return info.pubkey.hex
        return NodeIdentity(pubkey=info.pubkey, address=address).uri

    async def request_channel(self, base_url: str, private: bool = False) -> ChannelOutcome:
        """Ask the server's node to open a channel to ours."""
        own_uri = await self._own_uri()
        logger.info("channel_flow_started", server=base_url, node_uri=own_uri)

        request = await self._get(
            self._endpoint(base_url, "request-channel"), ChannelRequestResponse
        )
        logger.info("channel_request_received", uri=request.uri, callback=request.callback)

        try:
            server_node = NodeIdentity.from_uri(request.uri)
        except ValueError as e:
            raise ClientTransportError(
                f"Server advertised an invalid node URI: {e}", url=base_url
            ) from e
        await self.node_rpc.connect_peer(server_node.pubkey, server_node.address)
        logger.info("connected_to_server_node", uri=request.uri)

        response = await self._get(
            request.callback,
            OpenChannelResponse,
            params={
                "remoteid": remote_id_from_uri(own_uri),
                "k1": request.k1,
                "private": int(private),
            },
        )
        if response.ok:
            logger.info("channel_opened", channel_id=response.channel_id, txid=response.txid)
        else:
            logger.warning("channel_open_refused", reason=response.reason)
        return ChannelOutcome(request=request, response=response)

    # =========================================================================
    # Withdraw request (LUD-03)
    # =========================================================================

    async def request_withdraw(self, base_url: str) -> WithdrawOutcome:
        """Withdraw the advertised maximum into a fresh invoice and wait for it."""
        request = await self._get(
            self._endpoint(base_url, "request-withdraw"), WithdrawRequestResponse
        )
        amount_msat = request.max_withdrawable
        logger.info(
            "withdraw_request_received",
            callback=request.callback,
            min_msat=request.min_withdrawable,
            max_msat=request.max_withdrawable,
        )

        invoice = await self.node_rpc.create_invoice(
            amount_msat=amount_msat,
            label=f"lnurl-withdraw-{time.time_ns()}",
            description=request.default_description or CLIENT_INVOICE_DESCRIPTION,
            expiry_seconds=CLIENT_INVOICE_EXPIRY_SECONDS,
        )
        logger.info("withdraw_invoice_created", label=invoice.label, amount_msat=amount_msat)

        response = await self._get(
            request.callback,
            StatusResponse,
            params={"k1": request.k1, "pr": invoice.bolt11},
        )
        if not response.ok:
            logger.warning("withdraw_refused", reason=response.reason)
            return WithdrawOutcome(request=request, invoice=invoice, response=response)

        # Local confirmation only; the server pays on its own schedule.
        logger.info("withdraw_accepted_waiting_for_payment", label=invoice.label)
        settlement = await self.node_rpc.wait_invoice(invoice.label)
        logger.info(
            "withdraw_invoice_settled",
            label=invoice.label,
            status=settlement.status,
            amount_received_msat=settlement.amount_received_msat,
        )
        return WithdrawOutcome(
            request=request, invoice=invoice, response=response, settlement=settlement
        )

    # =========================================================================
    # Auth (LUD-04)
    # =========================================================================

    async def auth(self, base_url: str) -> AuthOutcome:
        """Sign the server's challenge with our node key."""
        info = await self.node_rpc.get_info()
        challenge = await self._get(
            self._endpoint(base_url, "auth-challenge"), AuthChallengeResponse
        )

        signature = await self.node_rpc.sign_message(challenge.k1)
        response = await self._get(
            self._endpoint(base_url, "auth-response"),
            AuthResultResponse,
            params={
                "k1": challenge.k1,
                "signature": signature.zbase.value,
                "pubkey": info.pubkey.hex,
            },
        )
        if response.ok:
            logger.info("auth_succeeded", pubkey=info.pubkey.hex, auth_event=response.event)
        else:
            logger.warning("auth_refused", reason=response.reason)
        return AuthOutcome(pubkey=info.pubkey, response=response)

