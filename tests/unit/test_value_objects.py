"""Tests for domain value objects."""

import pytest

from lnurlbridge.domain.value_objects import (
    WITHDRAW_BOUNDS,
    AmountBounds,
    ChallengeToken,
    NodeAddress,
    NodeIdentity,
    NodePublicKey,
    PaymentJob,
    PaymentResult,
)
from lnurlbridge.exceptions import ValidationError
from tests.fakes import make_pubkey

PUBKEY = make_pubkey(1)


class TestChallengeToken:
    def test_generate_produces_32_random_bytes(self):
        first, second = ChallengeToken.generate(), ChallengeToken.generate()

        assert len(bytes.fromhex(first.value)) == 32
        assert first != second

    def test_str_is_value(self):
        assert str(ChallengeToken("abc")) == "abc"


class TestNodePublicKey:
    def test_parse_valid_key(self):
        key = NodePublicKey.parse(PUBKEY)

        assert key.hex == PUBKEY
        assert len(key.hex) == NodePublicKey.HEX_LENGTH == 66

    def test_parse_normalises_uppercase_hex(self):
        assert NodePublicKey.parse(PUBKEY.upper()).hex == PUBKEY

    def test_parse_rejects_non_hex(self):
        with pytest.raises(ValueError, match="not a hex string"):
            NodePublicKey.parse("zz" * 33)

    def test_parse_rejects_wrong_length(self):
        with pytest.raises(ValueError, match="expected 33 bytes"):
            NodePublicKey.parse(PUBKEY[:64])

    def test_parse_rejects_uri_with_address(self):
        with pytest.raises(ValueError):
            NodePublicKey.parse(f"{PUBKEY}@127.0.0.1:9735")

    def test_parse_rejects_point_not_on_curve(self):
        with pytest.raises(ValueError, match="not a valid secp256k1 point"):
            NodePublicKey.parse("02" + "00" * 32)


class TestNodeAddress:
    def test_parse_ipv4(self):
        address = NodeAddress.parse("127.0.0.1:9735")

        assert address == NodeAddress("127.0.0.1", 9735)
        assert str(address) == "127.0.0.1:9735"

    def test_parse_bracketed_ipv6(self):
        address = NodeAddress.parse("[::1]:9735")

        assert address.host == "::1"
        assert str(address) == "[::1]:9735"

    def test_parse_hostname(self):
        assert NodeAddress.parse("node.example.com:9735").host == "node.example.com"

    @pytest.mark.parametrize("raw", ["127.0.0.1", "127.0.0.1:", ":9735", "host:port", "[::1]"])
    def test_parse_rejects_malformed(self, raw):
        with pytest.raises(ValueError):
            NodeAddress.parse(raw)

    def test_rejects_out_of_range_port(self):
        with pytest.raises(ValueError, match="Invalid port"):
            NodeAddress("127.0.0.1", 70000)


class TestNodeIdentity:
    def test_uri_format(self):
        identity = NodeIdentity(NodePublicKey(PUBKEY), NodeAddress("203.0.113.10", 9735))

        assert identity.uri == f"{PUBKEY}@203.0.113.10:9735"

    def test_uri_prefix_is_the_pubkey(self):
        identity = NodeIdentity(NodePublicKey(PUBKEY), NodeAddress("::1", 9735))

        assert identity.uri[: NodePublicKey.HEX_LENGTH] == PUBKEY

    def test_from_uri_round_trips(self):
        uri = f"{PUBKEY}@[2001:db8::1]:9735"

        assert NodeIdentity.from_uri(uri).uri == uri

    def test_from_uri_requires_separator(self):
        with pytest.raises(ValueError, match="Invalid node URI"):
            NodeIdentity.from_uri(PUBKEY)


class TestAmountBounds:
    @pytest.mark.parametrize("amount", [1_000, 500_000, 1_000_000])
    def test_accepts_inclusive_range(self, amount):
        assert WITHDRAW_BOUNDS.check(amount) == amount
        assert amount in WITHDRAW_BOUNDS

    def test_below_minimum(self):
        with pytest.raises(ValidationError) as exc_info:
            WITHDRAW_BOUNDS.check(999)

        assert exc_info.value.message == "Amount 999 msat below minimum 1000 msat"
        assert 999 not in WITHDRAW_BOUNDS

    def test_above_maximum(self):
        with pytest.raises(ValidationError) as exc_info:
            WITHDRAW_BOUNDS.check(1_000_001)

        assert exc_info.value.message == "Amount 1000001 msat exceeds maximum 1000000 msat"

    def test_missing_amount(self):
        with pytest.raises(ValidationError, match="Invoice has no amount"):
            WITHDRAW_BOUNDS.check(None)

    def test_rejects_inverted_bounds(self):
        with pytest.raises(ValueError):
            AmountBounds(min_msat=10, max_msat=5)


class TestPaymentValues:
    def test_payment_job_fee_ceiling_is_one_percent(self):
        job = PaymentJob(invoice="lnfake1000000x1", amount_msat=1_000_000)

        assert job.max_fee_percent == 1.0
        assert job.retry_for_seconds == 60
        assert job.max_fee_msat == 10_000

    def test_payment_result_fee(self):
        result = PaymentResult(
            payment_hash="00", status="complete", amount_msat=1000, amount_sent_msat=1003
        )

        assert result.fee_msat == 3
        assert PaymentResult(payment_hash="00", status="failed").fee_msat is None
