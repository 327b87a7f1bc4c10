"""Tests for the channel, withdraw and auth flow services."""

import asyncio

import pytest

from lnurlbridge.application.services import (
    AuthService,
    ChannelService,
    PaymentExecutor,
    WithdrawService,
)
from lnurlbridge.domain.enums import ResponseStatus
from lnurlbridge.domain.events import AuthVerified, ChannelOpened, WithdrawAccepted
from lnurlbridge.domain.value_objects import (
    AuthAssertion,
    ChallengeToken,
    ChannelOpenRequest,
    NodeAddress,
    NodeIdentity,
    WithdrawRequest,
    ZBaseSignature,
)
from lnurlbridge.exceptions import (
    NodeRpcConnectionError,
    NodeRpcError,
    PaymentQueueFullError,
    SignatureVerificationError,
    TokenRejectedError,
    ValidationError,
)
from lnurlbridge.infrastructure.token_store import ChallengeTokenStore
from tests.fakes import fake_invoice, make_pubkey

REMOTE = make_pubkey(7)


@pytest.fixture
def token_store():
    return ChallengeTokenStore()


class TestChannelService:
    @pytest.fixture
    def service(self, fake_node, token_store, event_bus):
        identity = NodeIdentity(fake_node.pubkey, NodeAddress("203.0.113.10", 9735))
        return ChannelService(
            fake_node,
            token_store,
            identity,
            callback_url="http://testserver/open-channel",
            event_bus=event_bus,
        )

    def test_request_channel_advertises_node_uri(self, service, fake_node, token_store):
        response = service.request_channel()

        assert response.uri == f"{fake_node.pubkey.hex}@203.0.113.10:9735"
        assert response.callback == "http://testserver/open-channel"
        assert response.tag == "channelRequest"
        assert response.k1 in token_store

    @pytest.mark.asyncio
    async def test_open_channel_funds_100k_sat(self, service, fake_node, recorded_events):
        k1 = service.request_channel().k1

        response = await service.open_channel(
            ChannelOpenRequest(remote_id=REMOTE, token=ChallengeToken(k1))
        )

        assert response.status == ResponseStatus.OK
        assert response.channel_id == "ab" * 32
        assert response.mindepth == 3
        assert fake_node.calls_to("fundchannel") == [
            {"id": REMOTE, "amount": 100_000, "announce": True}
        ]
        assert isinstance(recorded_events[-1], ChannelOpened)
        assert recorded_events[-1].announced is True

    @pytest.mark.asyncio
    async def test_private_channel_is_not_announced(self, service, fake_node):
        k1 = service.request_channel().k1

        await service.open_channel(
            ChannelOpenRequest(remote_id=REMOTE, token=ChallengeToken(k1), private=True)
        )

        assert fake_node.calls_to("fundchannel")[0]["announce"] is False

    @pytest.mark.asyncio
    async def test_replayed_token_is_rejected_without_funding(self, service, fake_node):
        k1 = service.request_channel().k1
        request = ChannelOpenRequest(remote_id=REMOTE, token=ChallengeToken(k1))
        await service.open_channel(request)

        with pytest.raises(TokenRejectedError, match="Invalid or already used k1"):
            await service.open_channel(request)

        assert len(fake_node.calls_to("fundchannel")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_replays_while_funding_is_in_flight(self, service, fake_node):
        fake_node.fund_gate = asyncio.Event()
        k1 = service.request_channel().k1
        request = ChannelOpenRequest(remote_id=REMOTE, token=ChallengeToken(k1))

        attempts = [asyncio.create_task(service.open_channel(request)) for _ in range(5)]
        await asyncio.sleep(0.05)

        # The winner is parked inside fundchannel; every replay is already answered.
        assert sum(task.done() for task in attempts) == 4
        assert len(fake_node.calls_to("fundchannel")) == 1

        fake_node.fund_gate.set()
        results = await asyncio.gather(*attempts, return_exceptions=True)

        accepted = [r for r in results if not isinstance(r, BaseException)]
        rejected = [r for r in results if isinstance(r, TokenRejectedError)]
        assert len(accepted) == 1
        assert accepted[0].status == ResponseStatus.OK
        assert len(rejected) == 4
        assert all(str(r).startswith("Invalid or already used k1") for r in rejected)
        assert len(fake_node.calls_to("fundchannel")) == 1

    @pytest.mark.asyncio
    async def test_invalid_remote_id_burns_token(self, service, fake_node, token_store):
        k1 = service.request_channel().k1

        with pytest.raises(ValidationError, match="^Invalid node id: "):
            await service.open_channel(
                ChannelOpenRequest(remote_id="nothex", token=ChallengeToken(k1))
            )

        assert k1 not in token_store
        assert fake_node.calls_to("fundchannel") == []

    @pytest.mark.asyncio
    async def test_funding_failure_is_reported(self, service, fake_node, token_store):
        fake_node.fund_error = NodeRpcError("Cannot afford transaction", method="fundchannel")
        k1 = service.request_channel().k1

        with pytest.raises(NodeRpcError) as exc_info:
            await service.open_channel(
                ChannelOpenRequest(remote_id=REMOTE, token=ChallengeToken(k1))
            )

        assert exc_info.value.message == "Failed to open channel: Cannot afford transaction"
        assert k1 not in token_store


class TestWithdrawService:
    @pytest.fixture
    def executor(self, fake_node, event_bus):
        return PaymentExecutor(fake_node, workers=1, queue_size=2, event_bus=event_bus)

    @pytest.fixture
    def service(self, fake_node, token_store, executor, event_bus):
        return WithdrawService(
            fake_node,
            token_store,
            executor,
            callback_url="http://testserver/withdraw",
            event_bus=event_bus,
        )

    def test_request_withdraw_advertises_bounds(self, service):
        response = service.request_withdraw()

        assert response.to_wire() == {
            "callback": "http://testserver/withdraw",
            "k1": response.k1,
            "tag": "withdrawRequest",
            "defaultDescription": "Withdrawal from service",
            "minWithdrawable": 1000,
            "maxWithdrawable": 1000000,
        }

    @pytest.mark.asyncio
    async def test_valid_invoice_is_queued(self, service, executor, recorded_events):
        k1 = service.request_withdraw().k1

        response = await service.withdraw(
            WithdrawRequest(token=ChallengeToken(k1), invoice=fake_invoice(500_000))
        )

        assert response.ok
        assert executor.stats()["submitted"] == 1
        assert executor.stats()["pending"] == 1
        assert isinstance(recorded_events[-1], WithdrawAccepted)
        assert recorded_events[-1].amount_msat == 500_000

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "amount, reason",
        [
            (999, "Amount 999 msat below minimum 1000 msat"),
            (1_000_001, "Amount 1000001 msat exceeds maximum 1000000 msat"),
            (None, "Invoice has no amount"),
        ],
    )
    async def test_out_of_bounds_invoice_is_rejected(
        self, service, executor, fake_node, amount, reason
    ):
        k1 = service.request_withdraw().k1

        with pytest.raises(ValidationError) as exc_info:
            await service.withdraw(
                WithdrawRequest(token=ChallengeToken(k1), invoice=fake_invoice(amount))
            )

        assert exc_info.value.message == reason
        assert executor.stats()["submitted"] == 0
        assert fake_node.paid_invoices == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [1_000, 1_000_000])
    async def test_bounds_are_inclusive(self, service, executor, amount):
        k1 = service.request_withdraw().k1

        response = await service.withdraw(
            WithdrawRequest(token=ChallengeToken(k1), invoice=fake_invoice(amount))
        )

        assert response.ok

    @pytest.mark.asyncio
    async def test_undecodable_invoice(self, service):
        k1 = service.request_withdraw().k1

        with pytest.raises(ValidationError, match="^Invalid invoice: Bad bech32 string"):
            await service.withdraw(WithdrawRequest(token=ChallengeToken(k1), invoice="garbage"))

    @pytest.mark.asyncio
    async def test_unreachable_node_is_not_a_client_error(self, service, fake_node):
        async def unreachable(invoice):
            raise NodeRpcConnectionError("Cannot reach node RPC socket", method="decode")

        fake_node.decode_invoice = unreachable
        k1 = service.request_withdraw().k1

        with pytest.raises(NodeRpcConnectionError):
            await service.withdraw(
                WithdrawRequest(token=ChallengeToken(k1), invoice=fake_invoice(5_000))
            )

    @pytest.mark.asyncio
    async def test_replayed_token_is_rejected(self, service, fake_node):
        k1 = service.request_withdraw().k1
        request = WithdrawRequest(token=ChallengeToken(k1), invoice=fake_invoice(5_000))
        await service.withdraw(request)

        with pytest.raises(TokenRejectedError, match="Invalid or already used k1"):
            await service.withdraw(request)

        assert len(fake_node.calls_to("decode")) == 1

    @pytest.mark.asyncio
    async def test_full_queue(self, service, token_store):
        for n in range(2):
            k1 = service.request_withdraw().k1
            await service.withdraw(
                WithdrawRequest(token=ChallengeToken(k1), invoice=fake_invoice(5_000, n))
            )
        k1 = service.request_withdraw().k1

        with pytest.raises(PaymentQueueFullError, match="Payment queue is full"):
            await service.withdraw(
                WithdrawRequest(token=ChallengeToken(k1), invoice=fake_invoice(5_000, 9))
            )

        assert k1 not in token_store


class TestAuthService:
    @pytest.fixture
    def service(self, fake_node, token_store, event_bus):
        return AuthService(fake_node, token_store, event_bus=event_bus)

    @pytest.mark.asyncio
    async def test_valid_signature_logs_in(self, service, wallet_node, recorded_events):
        k1 = service.challenge().k1
        signature = await wallet_node.sign_message(k1)

        response = await service.verify(
            AuthAssertion(
                token=ChallengeToken(k1), signature=signature.zbase, pubkey=wallet_node.pubkey.hex
            )
        )

        assert response.to_wire() == {"status": "OK", "event": "LOGGEDIN"}
        assert isinstance(recorded_events[-1], AuthVerified)

    @pytest.mark.asyncio
    async def test_checkmessage_receives_k1_and_zbase(self, service, fake_node, wallet_node):
        k1 = service.challenge().k1
        signature = await wallet_node.sign_message(k1)

        await service.verify(
            AuthAssertion(
                token=ChallengeToken(k1), signature=signature.zbase, pubkey=wallet_node.pubkey.hex
            )
        )

        assert fake_node.calls_to("checkmessage") == [
            {"message": k1, "zbase": signature.zbase.value, "pubkey": wallet_node.pubkey.hex}
        ]

    @pytest.mark.asyncio
    async def test_wrong_signature_fails(self, service, wallet_node):
        k1 = service.challenge().k1

        with pytest.raises(SignatureVerificationError, match="Signature verification failed"):
            await service.verify(
                AuthAssertion(
                    token=ChallengeToken(k1),
                    signature=ZBaseSignature("forged"),
                    pubkey=wallet_node.pubkey.hex,
                )
            )

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, service, wallet_node):
        k1 = service.challenge().k1
        signature = await wallet_node.sign_message(k1)
        assertion = AuthAssertion(
            token=ChallengeToken(k1), signature=signature.zbase, pubkey=wallet_node.pubkey.hex
        )
        await service.verify(assertion)

        with pytest.raises(TokenRejectedError, match="Invalid or expired k1"):
            await service.verify(assertion)

    @pytest.mark.asyncio
    async def test_invalid_pubkey(self, service, fake_node):
        k1 = service.challenge().k1

        with pytest.raises(ValidationError, match="^Invalid pubkey: "):
            await service.verify(
                AuthAssertion(token=ChallengeToken(k1), signature=ZBaseSignature("x"), pubkey="02")
            )

        assert fake_node.calls_to("checkmessage") == []

    @pytest.mark.asyncio
    async def test_node_failure_is_a_verification_error(self, service, fake_node, wallet_node):
        fake_node.verify_error = NodeRpcError("Connection refused", method="checkmessage")
        k1 = service.challenge().k1

        with pytest.raises(NodeRpcError) as exc_info:
            await service.verify(
                AuthAssertion(
                    token=ChallengeToken(k1),
                    signature=ZBaseSignature("x"),
                    pubkey=wallet_node.pubkey.hex,
                )
            )

        assert exc_info.value.message == "Verification error: Connection refused"
