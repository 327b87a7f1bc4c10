"""LNURL endpoints.

Field names of every response are part of the wire contract; see
``lnurlbridge.domain.schemas``.
"""

from fastapi import APIRouter, Depends, Request

from lnurlbridge.application.services import (
    AuthService,
    ChannelService,
    PaymentExecutor,
    WithdrawService,
)
from lnurlbridge.domain.schemas import (
    AuthChallengeResponse,
    AuthResultResponse,
    ChannelRequestResponse,
    HealthResponse,
    OpenChannelResponse,
    StatusResponse,
    WithdrawRequestResponse,
)
from lnurlbridge.domain.value_objects import (
    AuthAssertion,
    ChallengeToken,
    ChannelOpenRequest,
    NodeIdentity,
    WithdrawRequest,
    ZBaseSignature,
)
from lnurlbridge.infrastructure.token_store import ChallengeTokenStore

router = APIRouter()


def get_channel_service(request: Request) -> ChannelService:
    return request.app.state.channel_service


def get_withdraw_service(request: Request) -> WithdrawService:
    return request.app.state.withdraw_service


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


# =============================================================================
# Channel request (LUD-02)
# =============================================================================


@router.get(
    "/request-channel",
    response_model=ChannelRequestResponse,
    response_model_exclude_none=True,
)
async def request_channel(service: ChannelService = Depends(get_channel_service)):
    return service.request_channel()


@router.get(
    "/open-channel",
    response_model=OpenChannelResponse,
    response_model_exclude_none=True,
)
async def open_channel(
    remoteid: str,
    k1: str,
    private: bool | None = None,
    service: ChannelService = Depends(get_channel_service),
):
    return await service.open_channel(
        ChannelOpenRequest(remote_id=remoteid, token=ChallengeToken(k1), private=bool(private))
    )


# =============================================================================
# Withdraw request (LUD-03)
# =============================================================================


@router.get(
    "/request-withdraw",
    response_model=WithdrawRequestResponse,
    response_model_exclude_none=True,
)
async def request_withdraw(service: WithdrawService = Depends(get_withdraw_service)):
    return service.request_withdraw()


@router.get("/withdraw", response_model=StatusResponse, response_model_exclude_none=True)
async def withdraw(
    k1: str,
    pr: str,
    service: WithdrawService = Depends(get_withdraw_service),
):
    return await service.withdraw(WithdrawRequest(token=ChallengeToken(k1), invoice=pr))


# =============================================================================
# Auth (LUD-04)
# =============================================================================


@router.get(
    "/auth-challenge",
    response_model=AuthChallengeResponse,
    response_model_exclude_none=True,
)
async def auth_challenge(service: AuthService = Depends(get_auth_service)):
    return service.challenge()


@router.get(
    "/auth-response",
    response_model=AuthResultResponse,
    response_model_exclude_none=True,
)
async def auth_response(
    k1: str,
    signature: str,
    pubkey: str,
    service: AuthService = Depends(get_auth_service),
):
    # ``signature`` is the zbase encoding returned by signmessage, never the DER hex.
    return await service.verify(
        AuthAssertion(
            token=ChallengeToken(k1),
            signature=ZBaseSignature(signature),
            pubkey=pubkey,
        )
    )


# =============================================================================
# Operations
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    identity: NodeIdentity = request.app.state.identity
    token_store: ChallengeTokenStore = request.app.state.token_store
    executor: PaymentExecutor = request.app.state.payment_executor
    return HealthResponse(
        status="ok",
        node_id=identity.pubkey.hex,
        outstanding_tokens=len(token_store),
        payments=executor.stats(),
        events=request.app.state.event_bus.get_stats()["events_published"],
    )
