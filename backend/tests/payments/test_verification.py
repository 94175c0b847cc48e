"""Tests for USDC payment verification."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from app.payments.chain import Receipt, ReceiptLog, TransactionInfo
from app.payments.errors import ConfigError, NetworkError, VerificationErrorKind
from app.payments.events import TRANSFER_EVENT_SIGNATURE
from app.payments.verification import (
    MAX_AMOUNT_DIFFERENCE,
    PaymentVerifier,
    VerificationRequest,
    VerificationResult,
    from_token_units,
    is_valid_address,
    is_valid_transaction_hash,
    to_token_units,
)

USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
RECIPIENT = "0x" + "ab" * 20
OTHER = "0x" + "cd" * 20
SENDER = "0x" + "12" * 20
TX_HASH = "0x" + "a1" * 32


def topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:].lower()


def transfer_log(to=RECIPIENT, units=5_000_000, token=USDC, sender=SENDER) -> ReceiptLog:
    return ReceiptLog(
        address=token,
        topics=(TRANSFER_EVENT_SIGNATURE, topic(sender), topic(to)),
        data="0x" + format(units, "064x"),
    )


def make_receipt(*logs, status=1, block=100) -> Receipt:
    return Receipt(transaction_hash=TX_HASH, block_number=block, status=status, logs=tuple(logs))


def make_verifier(receipt, current_block=110) -> PaymentVerifier:
    client = AsyncMock()
    client.get_transaction_receipt.return_value = receipt
    client.get_block_number.return_value = current_block
    return PaymentVerifier(client=client, token_address=USDC)


def request(amount="5", recipient=RECIPIENT, tx_hash=TX_HASH, confirmations=3):
    return VerificationRequest(
        transaction_hash=tx_hash,
        expected_amount=Decimal(amount),
        expected_recipient=recipient,
        minimum_confirmations=confirmations,
    )


class TestValidators:
    """Tests for hash and address predicates."""

    def test_valid_hash(self):
        assert is_valid_transaction_hash(TX_HASH)
        assert is_valid_transaction_hash(TX_HASH.upper().replace("0X", "0x"))

    @pytest.mark.parametrize(
        "value",
        ["", "0x", "0x" + "a" * 63, "0x" + "a" * 65, "a1" * 33, "0x" + "g" * 64, None, 123],
    )
    def test_invalid_hash(self, value):
        assert not is_valid_transaction_hash(value)

    def test_valid_address(self):
        assert is_valid_address(USDC)
        assert is_valid_address(RECIPIENT)

    @pytest.mark.parametrize("value", ["", "0x" + "a" * 39, "0x" + "a" * 41, "ab" * 21, None])
    def test_invalid_address(self, value):
        assert not is_valid_address(value)


class TestTokenUnits:
    """Tests for decimal <-> token unit conversion."""

    def test_whole_amount(self):
        assert to_token_units(Decimal("5")) == 5_000_000

    def test_fractional_amount(self):
        assert to_token_units(Decimal("9.99")) == 9_990_000
        assert to_token_units(Decimal("0.000001")) == 1

    def test_excess_precision_rejected(self):
        with pytest.raises(ValueError):
            to_token_units(Decimal("1.0000001"))

    def test_from_units(self):
        assert from_token_units(9_990_000) == Decimal("9.99")
        assert from_token_units(1) == Decimal("0.000001")


class TestVerificationRequest:
    """Tests for request construction."""

    def test_float_amount_is_coerced_exactly(self):
        req = VerificationRequest(TX_HASH, 9.99, RECIPIENT)
        assert req.expected_amount == Decimal("9.99")

    def test_string_amount(self):
        assert VerificationRequest(TX_HASH, "12.5", RECIPIENT).expected_amount == Decimal("12.5")

    def test_default_confirmations(self):
        assert VerificationRequest(TX_HASH, "1", RECIPIENT).minimum_confirmations == 3

    @pytest.mark.parametrize("amount", ["-1", "1.0000001", "NaN", "abc"])
    def test_bad_amount_rejected(self, amount):
        with pytest.raises(ValueError):
            VerificationRequest(TX_HASH, amount, RECIPIENT)

    def test_negative_confirmations_rejected(self):
        with pytest.raises(ValueError):
            VerificationRequest(TX_HASH, "1", RECIPIENT, minimum_confirmations=-1)


class TestPaymentVerifierConfig:
    def test_invalid_token_address(self):
        with pytest.raises(ConfigError):
            PaymentVerifier(client=AsyncMock(), token_address="not-an-address")

    def test_rejects_fewer_decimals_than_usdc(self):
        with pytest.raises(ConfigError):
            PaymentVerifier(client=AsyncMock(), token_address=USDC, decimals=2)

    @pytest.mark.asyncio
    async def test_sub_cent_price_verifies_with_default_decimals(self):
        verifier = make_verifier(make_receipt(transfer_log(units=9_990_001)))
        result = await verifier.verify_token_transfer(request(amount="9.990001"))
        assert result.is_valid


class TestInputValidation:
    """Malformed input is rejected before any node call."""

    @pytest.mark.asyncio
    async def test_malformed_hash(self):
        verifier = make_verifier(make_receipt(transfer_log()))
        result = await verifier.verify_token_transfer(request(tx_hash="0x1234"))

        assert not result.is_valid
        assert result.failure_reason == VerificationErrorKind.INVALID_HASH
        verifier.client.get_transaction_receipt.assert_not_called()
        verifier.client.get_block_number.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_recipient(self):
        verifier = make_verifier(make_receipt(transfer_log()))
        result = await verifier.verify_token_transfer(request(recipient="0xnope"))

        assert result.failure_reason == VerificationErrorKind.INVALID_RECIPIENT
        assert not result.retryable
        verifier.client.get_transaction_receipt.assert_not_called()


class TestReceiptChecks:
    @pytest.mark.asyncio
    async def test_transaction_not_found(self):
        verifier = make_verifier(None)
        result = await verifier.verify_token_transfer(request())

        assert result.failure_reason == VerificationErrorKind.TX_NOT_FOUND
        assert result.retryable
        verifier.client.get_block_number.assert_not_called()

    @pytest.mark.asyncio
    async def test_reverted_transaction_ignores_logs(self):
        verifier = make_verifier(make_receipt(transfer_log(), status=0))
        result = await verifier.verify_token_transfer(request())

        assert result.failure_reason == VerificationErrorKind.TX_FAILED
        assert result.block_number == 100
        assert not result.retryable
        verifier.client.get_block_number.assert_not_called()

    @pytest.mark.asyncio
    async def test_hash_is_lowercased_before_lookup(self):
        verifier = make_verifier(make_receipt(transfer_log()))
        upper = "0x" + "A1" * 32
        result = await verifier.verify_token_transfer(request(tx_hash=upper))

        verifier.client.get_transaction_receipt.assert_awaited_once_with(TX_HASH)
        assert result.transaction_hash == TX_HASH


class TestConfirmations:
    @pytest.mark.asyncio
    async def test_one_short_of_minimum(self):
        verifier = make_verifier(make_receipt(transfer_log(), block=100), current_block=102)
        result = await verifier.verify_token_transfer(request(confirmations=3))

        assert result.failure_reason == VerificationErrorKind.INSUFFICIENT_CONFIRMATIONS
        assert result.confirmations == 2
        assert result.block_number == 100
        assert result.retryable

    @pytest.mark.asyncio
    async def test_exactly_minimum_passes(self):
        verifier = make_verifier(make_receipt(transfer_log(), block=100), current_block=103)
        result = await verifier.verify_token_transfer(request(confirmations=3))

        assert result.is_valid
        assert result.confirmations == 3

    @pytest.mark.asyncio
    async def test_node_behind_receipt_counts_as_zero(self):
        verifier = make_verifier(make_receipt(transfer_log(), block=100), current_block=99)
        result = await verifier.verify_token_transfer(request(confirmations=1))

        assert result.failure_reason == VerificationErrorKind.INSUFFICIENT_CONFIRMATIONS
        assert result.confirmations == 0

    @pytest.mark.asyncio
    async def test_zero_minimum_accepts_same_block(self):
        verifier = make_verifier(make_receipt(transfer_log(), block=100), current_block=100)
        result = await verifier.verify_token_transfer(request(confirmations=0))

        assert result.is_valid


class TestLogScan:
    @pytest.mark.asyncio
    async def test_matches_transfer_to_expected_recipient(self):
        receipt = make_receipt(
            transfer_log(to=OTHER, units=1_000_000),
            transfer_log(to=RECIPIENT, units=5_000_000),
        )
        result = await make_verifier(receipt).verify_token_transfer(request())

        assert result.is_valid
        assert result.actual_amount == Decimal("5")
        assert result.actual_recipient == RECIPIENT

    @pytest.mark.asyncio
    async def test_first_matching_transfer_wins(self):
        receipt = make_receipt(
            transfer_log(units=5_000_000),
            transfer_log(units=9_000_000),
        )
        result = await make_verifier(receipt).verify_token_transfer(request())

        assert result.is_valid
        assert result.actual_amount == Decimal("5")

    @pytest.mark.asyncio
    async def test_other_token_contracts_ignored(self):
        fake_token = "0x" + "99" * 20
        receipt = make_receipt(transfer_log(token=fake_token))
        result = await make_verifier(receipt).verify_token_transfer(request())

        assert result.failure_reason == VerificationErrorKind.NO_TRANSFER_FOUND
        assert not result.retryable

    @pytest.mark.asyncio
    async def test_token_address_matched_case_insensitively(self):
        receipt = make_receipt(transfer_log(token=USDC.lower()))
        result = await make_verifier(receipt).verify_token_transfer(request())

        assert result.is_valid

    @pytest.mark.asyncio
    async def test_recipient_matched_case_insensitively(self):
        recipient = "0x" + "AB" * 20
        result = await make_verifier(make_receipt(transfer_log())).verify_token_transfer(
            request(recipient=recipient)
        )

        assert result.is_valid
        assert result.actual_recipient == recipient.lower()

    @pytest.mark.asyncio
    async def test_undecodable_logs_skipped(self):
        approval = ReceiptLog(
            address=USDC,
            topics=("0x8c5be1e5ebec7d5bd14f71427d1e84f3dd0314c0f7b2291e5b200ac8c7c3b925",),
            data="0x" + "00" * 32,
        )
        truncated = ReceiptLog(
            address=USDC,
            topics=(TRANSFER_EVENT_SIGNATURE, topic(SENDER), topic(RECIPIENT)),
            data="0x1234",
        )
        receipt = make_receipt(approval, truncated, transfer_log())
        result = await make_verifier(receipt).verify_token_transfer(request())

        assert result.is_valid

    @pytest.mark.asyncio
    async def test_no_logs(self):
        result = await make_verifier(make_receipt()).verify_token_transfer(request())

        assert result.failure_reason == VerificationErrorKind.NO_TRANSFER_FOUND
        assert result.confirmations == 10


class TestAmountTolerance:
    @pytest.mark.asyncio
    async def test_exact_tolerance_passes(self):
        receipt = make_receipt(transfer_log(units=4_990_000))
        result = await make_verifier(receipt).verify_token_transfer(request("5"))

        assert result.is_valid
        assert result.actual_amount == Decimal("4.99")

    @pytest.mark.asyncio
    async def test_overpay_at_tolerance_passes(self):
        receipt = make_receipt(transfer_log(units=5_010_000))
        result = await make_verifier(receipt).verify_token_transfer(request("5"))

        assert result.is_valid

    @pytest.mark.asyncio
    async def test_just_outside_tolerance_fails(self):
        receipt = make_receipt(transfer_log(units=4_989_999))
        result = await make_verifier(receipt).verify_token_transfer(request("5"))

        assert result.failure_reason == VerificationErrorKind.AMOUNT_MISMATCH
        assert result.actual_amount == Decimal("4.989999")
        assert result.expected_amount == Decimal("5")
        assert result.actual_recipient == RECIPIENT
        assert not result.retryable

    @pytest.mark.asyncio
    async def test_large_overpayment_fails(self):
        receipt = make_receipt(transfer_log(units=50_000_000))
        result = await make_verifier(receipt).verify_token_transfer(request("5"))

        assert result.failure_reason == VerificationErrorKind.AMOUNT_MISMATCH

    def test_tolerance_constant(self):
        assert MAX_AMOUNT_DIFFERENCE == Decimal("0.01")


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_nine_ninety_nine_with_four_confirmations(self):
        receipt = make_receipt(transfer_log(units=9_990_000), block=100)
        verifier = make_verifier(receipt, current_block=104)

        result = await verifier.verify_token_transfer(request("9.99", confirmations=3))

        assert result.is_valid
        assert result.failure_reason is None
        assert result.actual_amount == Decimal("9.99")
        assert result.actual_recipient == RECIPIENT
        assert result.block_number == 100
        assert result.confirmations == 4

    @pytest.mark.asyncio
    async def test_repeat_calls_are_identical(self):
        receipt = make_receipt(transfer_log(units=9_990_000), block=100)
        verifier = make_verifier(receipt, current_block=104)

        first = await verifier.verify_token_transfer(request("9.99"))
        second = await verifier.verify_token_transfer(request("9.99"))

        assert first == second


class TestTransportErrors:
    @pytest.mark.asyncio
    async def test_network_error_propagates(self):
        verifier = make_verifier(None)
        verifier.client.get_transaction_receipt.side_effect = NetworkError("timed out")

        with pytest.raises(NetworkError):
            await verifier.verify_token_transfer(request())

    @pytest.mark.asyncio
    async def test_block_number_failure_propagates(self):
        verifier = make_verifier(make_receipt(transfer_log()))
        verifier.client.get_block_number.side_effect = NetworkError("boom")

        with pytest.raises(NetworkError):
            await verifier.verify_token_transfer(request())


class TestVerificationResult:
    def test_to_dict(self):
        result = VerificationResult.rejected(
            TX_HASH,
            VerificationErrorKind.AMOUNT_MISMATCH,
            "Amount mismatch",
            actual_amount=Decimal("4.5"),
            expected_amount=Decimal("5"),
        )
        data = result.to_dict()

        assert data["is_valid"] is False
        assert data["failure_reason"] == "AMOUNT_MISMATCH"
        assert data["actual_amount"] == "4.5"
        assert data["expected_amount"] == "5"
        assert data["error"] == "Amount mismatch"

    def test_valid_result_is_not_retryable(self):
        assert not VerificationResult(is_valid=True, transaction_hash=TX_HASH).retryable


class TestTransactionDetails:
    @pytest.mark.asyncio
    async def test_details(self):
        verifier = make_verifier(make_receipt(transfer_log()), current_block=120)
        verifier.client.get_transaction.return_value = TransactionInfo(
            hash=TX_HASH,
            block_number=100,
            from_address=SENDER,
            to_address=USDC,
            value=0,
            input="0x" + "00" * 68,
        )

        details = await verifier.get_transaction_details(TX_HASH)

        assert details["status"] == 1
        assert details["log_count"] == 1
        assert details["current_block"] == 120
        assert details["transaction"]["input_size"] == 68

    @pytest.mark.asyncio
    async def test_details_unknown_transaction(self):
        verifier = make_verifier(None, current_block=120)
        verifier.client.get_transaction.return_value = None

        details = await verifier.get_transaction_details(TX_HASH)

        assert details["transaction"] is None
        assert details["status"] is None
        assert details["log_count"] is None
