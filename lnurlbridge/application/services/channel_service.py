"""LUD-02 channel request: the service's node funds a channel to the requester."""

from lnurlbridge.core.events.base import GlobalEventBus, get_global_event_bus
from lnurlbridge.domain.enums import LnurlTag, ResponseStatus
from lnurlbridge.domain.events import ChannelOpened
from lnurlbridge.domain.schemas import ChannelRequestResponse, OpenChannelResponse
from lnurlbridge.domain.value_objects import (
    CHANNEL_FUNDING_SAT,
    ChannelOpenRequest,
    NodeIdentity,
    NodePublicKey,
)
from lnurlbridge.exceptions import NodeRpcError, TokenRejectedError, ValidationError
from lnurlbridge.infrastructure.node_rpc import NodeRpc
from lnurlbridge.infrastructure.token_store import ChallengeTokenStore
from lnurlbridge.utils.logging import get_logger

logger = get_logger(__name__)


class ChannelService:
    """Server side of the channel request flow.

    States: issued → consumed. The token is burned before the funding call,
    so a replayed callback can never open a second channel, even while the
    first ``fundchannel`` is still running.
    """

    def __init__(
        self,
        node_rpc: NodeRpc,
        token_store: ChallengeTokenStore,
        identity: NodeIdentity,
        callback_url: str,
        event_bus: GlobalEventBus | None = None,
    ):
        """Initialize the service.

        Args:
            node_rpc: Shared node adapter
            token_store: Shared challenge store
            identity: This node's identity, advertised as ``uri``
            callback_url: Absolute URL of the ``open-channel`` endpoint
            event_bus: Bus receiving ``ChannelOpened`` (default: global bus)
        """
        self.node_rpc = node_rpc
        self.token_store = token_store
        self.identity = identity
        self.callback_url = callback_url
        self.event_bus = event_bus or get_global_event_bus()

    def request_channel(self) -> ChannelRequestResponse:
        """Step 1: issue a challenge and describe how to reach our node."""
        token = self.token_store.issue()
        logger.info("channel_request_issued", uri=self.identity.uri)
        return ChannelRequestResponse(
            uri=self.identity.uri,
            callback=self.callback_url,
            k1=token.value,
            tag=LnurlTag.CHANNEL_REQUEST.value,
        )

    async def open_channel(self, request: ChannelOpenRequest) -> OpenChannelResponse:
        """Step 2: consume the challenge and fund a channel to ``remote_id``.

        Raises:
            TokenRejectedError: unknown, expired or reused token
            ValidationError: ``remote_id`` is not a public key
            NodeRpcError: the funding call failed
        """
        if not self.token_store.validate_and_consume(request.token):
            logger.warning("open_channel_rejected", reason="token")
            raise TokenRejectedError("Invalid or already used k1", field="k1")

        try:
            remote = NodePublicKey.parse(request.remote_id)
        except ValueError as e:
            logger.warning("open_channel_rejected", reason="remote_id", error=str(e))
            raise ValidationError(
                f"Invalid node id: {e}", field="remoteid", value=request.remote_id
            ) from e

        announce = not request.private
        logger.info(
            "open_channel_funding",
            remote_id=remote.hex,
            amount_sat=CHANNEL_FUNDING_SAT,
            announce=announce,
        )
        try:
            result = await self.node_rpc.fund_channel(remote, CHANNEL_FUNDING_SAT, announce)
        except NodeRpcError as e:
            logger.error("open_channel_failed", remote_id=remote.hex, error=e.message)
            raise NodeRpcError(
                f"Failed to open channel: {e.message}",
                method=e.method,
                code=e.code,
                original_error=e,
            ) from e

        logger.info(
            "open_channel_succeeded",
            remote_id=remote.hex,
            channel_id=result.channel_id,
            txid=result.txid,
        )
        await self.event_bus.publish_async(
            ChannelOpened(
                remote_id=remote.hex,
                channel_id=result.channel_id,
                txid=result.txid,
                outnum=result.outnum,
                announced=announce,
            )
        )
        return OpenChannelResponse(
            status=ResponseStatus.OK,
            mindepth=result.mindepth,
            channel_id=result.channel_id,
            outnum=result.outnum,
            tx=result.tx,
            txid=result.txid,
        )
