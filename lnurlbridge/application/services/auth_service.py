"""LUD-04 auth: a requester proves control of a node key by signing a challenge."""

from lnurlbridge.core.events.base import GlobalEventBus, get_global_event_bus
from lnurlbridge.domain.enums import AuthEvent, ResponseStatus
from lnurlbridge.domain.events import AuthVerified
from lnurlbridge.domain.schemas import AuthChallengeResponse, AuthResultResponse
from lnurlbridge.domain.value_objects import AuthAssertion, NodePublicKey
from lnurlbridge.exceptions import (
    NodeRpcError,
    SignatureVerificationError,
    TokenRejectedError,
    ValidationError,
)
from lnurlbridge.infrastructure.node_rpc import NodeRpc
from lnurlbridge.infrastructure.token_store import ChallengeTokenStore
from lnurlbridge.utils.logging import get_logger

logger = get_logger(__name__)


class AuthService:
    """Server side of the auth flow.

    States: issued → consumed → verified | rejected. Verification goes
    through the node's ``checkmessage``, which only understands the zbase
    encoding of the signature.
    """

    def __init__(
        self,
        node_rpc: NodeRpc,
        token_store: ChallengeTokenStore,
        event_bus: GlobalEventBus | None = None,
    ):
        self.node_rpc = node_rpc
        self.token_store = token_store
        self.event_bus = event_bus or get_global_event_bus()

    def challenge(self) -> AuthChallengeResponse:
        token = self.token_store.issue()
        logger.info("auth_challenge_issued")
        return AuthChallengeResponse(k1=token.value)

    async def verify(self, assertion: AuthAssertion) -> AuthResultResponse:
        """Consume the challenge and check the signature over it.

        Raises:
            TokenRejectedError: unknown, expired or reused token
            ValidationError: malformed public key
            SignatureVerificationError: the signature does not verify
            NodeRpcError: ``checkmessage`` itself failed
        """
        if not self.token_store.validate_and_consume(assertion.token):
            logger.warning("auth_rejected", reason="token")
            raise TokenRejectedError("Invalid or expired k1", field="k1")

        try:
            pubkey = NodePublicKey.parse(assertion.pubkey)
        except ValueError as e:
            logger.warning("auth_rejected", reason="pubkey", error=str(e))
            raise ValidationError(
                f"Invalid pubkey: {e}", field="pubkey", value=assertion.pubkey
            ) from e

        try:
            verified = await self.node_rpc.verify_message(
                assertion.token.value, assertion.signature, pubkey
            )
        except NodeRpcError as e:
            logger.error("auth_verification_error", pubkey=pubkey.hex, error=e.message)
            raise NodeRpcError(
                f"Verification error: {e.message}",
                method=e.method,
                code=e.code,
                original_error=e,
            ) from e

        if not verified:
            logger.warning("auth_rejected", reason="signature", pubkey=pubkey.hex)
            raise SignatureVerificationError("Signature verification failed")

        logger.info("auth_verified", pubkey=pubkey.hex)
        await self.event_bus.publish_async(AuthVerified(pubkey=pubkey.hex))
        return AuthResultResponse(status=ResponseStatus.OK, event=AuthEvent.LOGGEDIN.value)
