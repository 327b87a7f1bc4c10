"""LUD-03 withdraw request: the service pays an invoice supplied by the requester."""

from lnurlbridge.application.services.payment_executor import PaymentExecutor
from lnurlbridge.core.events.base import GlobalEventBus, get_global_event_bus
from lnurlbridge.domain.enums import LnurlTag, ResponseStatus
from lnurlbridge.domain.events import WithdrawAccepted
from lnurlbridge.domain.schemas import StatusResponse, WithdrawRequestResponse
from lnurlbridge.domain.value_objects import (
    WITHDRAW_BOUNDS,
    WITHDRAW_DEFAULT_DESCRIPTION,
    AmountBounds,
    PaymentJob,
    WithdrawRequest,
)
from lnurlbridge.exceptions import (
    NodeRpcConnectionError,
    NodeRpcError,
    TokenRejectedError,
    ValidationError,
)
from lnurlbridge.infrastructure.node_rpc import NodeRpc
from lnurlbridge.infrastructure.token_store import ChallengeTokenStore
from lnurlbridge.utils.logging import get_logger

logger = get_logger(__name__)


class WithdrawService:
    """Server side of the withdraw flow.

    States: issued → consumed → accepted (payment pending). An ``OK`` answer
    means the invoice was queued for payment, not that it was paid; the
    payment outcome is only visible through the node, the logs and the
    ``WithdrawPayment*`` events.
    """

    def __init__(
        self,
        node_rpc: NodeRpc,
        token_store: ChallengeTokenStore,
        executor: PaymentExecutor,
        callback_url: str,
        bounds: AmountBounds = WITHDRAW_BOUNDS,
        description: str = WITHDRAW_DEFAULT_DESCRIPTION,
        event_bus: GlobalEventBus | None = None,
    ):
        self.node_rpc = node_rpc
        self.token_store = token_store
        self.executor = executor
        self.callback_url = callback_url
        self.bounds = bounds
        self.description = description
        self.event_bus = event_bus or get_global_event_bus()

    def request_withdraw(self) -> WithdrawRequestResponse:
        """Step 1: issue a challenge and advertise the withdrawable range."""
        token = self.token_store.issue()
        logger.info(
            "withdraw_request_issued",
            min_msat=self.bounds.min_msat,
            max_msat=self.bounds.max_msat,
        )
        return WithdrawRequestResponse(
            callback=self.callback_url,
            k1=token.value,
            tag=LnurlTag.WITHDRAW_REQUEST.value,
            default_description=self.description,
            min_withdrawable=self.bounds.min_msat,
            max_withdrawable=self.bounds.max_msat,
        )

    async def withdraw(self, request: WithdrawRequest) -> StatusResponse:
        """Step 2: validate the invoice and queue its payment.

        Raises:
            TokenRejectedError: unknown, expired or reused token
            ValidationError: undecodable invoice, missing or out-of-range amount
            NodeRpcConnectionError: the node could not be reached
            PaymentQueueFullError: no room to queue the payment
        """
        if not self.token_store.validate_and_consume(request.token):
            logger.warning("withdraw_rejected", reason="token")
            raise TokenRejectedError("Invalid or already used k1", field="k1")

        try:
            decoded = await self.node_rpc.decode_invoice(request.invoice)
        except NodeRpcConnectionError:
            raise
        except NodeRpcError as e:
            logger.warning("withdraw_rejected", reason="decode", error=e.message)
            raise ValidationError(
                f"Invalid invoice: {e.message}", field="pr", original_error=e
            ) from e

        try:
            amount_msat = self.bounds.check(decoded.amount_msat)
        except ValidationError as e:
            logger.warning("withdraw_rejected", reason="amount", error=e.message)
            raise

        self.executor.submit(PaymentJob(invoice=request.invoice, amount_msat=amount_msat))
        logger.info("withdraw_accepted", amount_msat=amount_msat)
        await self.event_bus.publish_async(
            WithdrawAccepted(invoice=request.invoice, amount_msat=amount_msat)
        )
        return StatusResponse(status=ResponseStatus.OK)
