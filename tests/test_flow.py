"""
Tests for the intent lifecycle state machine.
"""
from unittest.mock import MagicMock

import pytest

from zkp2p_sdk.client import SignalResult
from zkp2p_sdk.exceptions import (
    APIError,
    ContractError,
    EncodingError,
    NetworkError,
    NetworkReason,
    UnknownProcessorError,
    ValidationError,
)
from zkp2p_sdk.flow import FailureReason, IntentFlow, IntentState
from zkp2p_sdk.gating import GatingSignature
from zkp2p_sdk.models import QuoteRequest, QuoteResponse
from tests.test_helpers.client_creator import FUTURE_EXPIRATION, TEST_INTENT_HASH, TEST_RECIPIENT, TEST_TOKEN

S = IntentState

HAPPY_PATH = [
    S.QUOTING,
    S.QUOTE_READY,
    S.SIGNALING,
    S.SIGNALED,
    S.AWAITING_PAYMENT,
    S.PROOF_SUBMISSION,
    S.GATE_VERIFYING,
    S.RELEASING,
    S.FULFILLED,
]

SIGNATURE = GatingSignature(signature=b"\x5a" * 65, signature_expiration=FUTURE_EXPIRATION)
EXPIRED = GatingSignature(signature=b"\x01" * 65, signature_expiration=1)


@pytest.fixture
def quote_request():
    return QuoteRequest(
        payment_platforms=["venmo"],
        fiat_currency="USD",
        user=TEST_RECIPIENT,
        recipient=TEST_RECIPIENT,
        destination_chain_id=8453,
        destination_token=TEST_TOKEN,
        amount="10",
    )


@pytest.fixture
def fake_client(quote_response):
    client = MagicMock(name="client")
    client.get_quote.return_value = QuoteResponse.model_validate(quote_response)
    client.request_intent_signature.return_value = SIGNATURE
    client.signal_intent.return_value = SignalResult(
        intent_hash=TEST_INTENT_HASH, receipt=MagicMock(name="signal_receipt"), signature=SIGNATURE
    )
    client.fulfill_intent.return_value = MagicMock(name="fulfill_receipt")
    client.cancel_intent.return_value = MagicMock(name="cancel_receipt")
    return client


@pytest.fixture
def flow(fake_client):
    return IntentFlow(fake_client, max_attempts=3, backoff_seconds=0.01)


@pytest.fixture
def prover(proof_object):
    return lambda flow: [proof_object]


def advance_to_awaiting_payment(flow, quote_request):
    flow.fetch_quote(quote_request)
    flow.signal()
    assert flow.state == S.AWAITING_PAYMENT


def test_end_to_end_history(flow, fake_client, quote_request, prover):
    assert flow.run(quote_request, prover) == S.FULFILLED
    assert flow.history == HAPPY_PATH
    assert flow.intent_hash == TEST_INTENT_HASH
    assert flow.failure is None
    assert set(flow.receipts) == {"signalIntent", "fulfillIntent"}

    fake_client.build_sign_intent_request.assert_called_once_with(
        deposit_id=42,
        amount=9900000,
        to_address=TEST_RECIPIENT,
        processor_name="venmo",
        payee_details="0x" + "77" * 32,
        fiat_currency="USD",
        conversion_rate=1010000000000000000,
    )
    args, kwargs = fake_client.fulfill_intent.call_args
    assert args == (TEST_INTENT_HASH, flow.proof_bytes)
    assert kwargs["verification_data"] == SIGNATURE.verification_data()


def test_gate_signature_timeout_never_releases(flow, fake_client, quote_request, prover):
    timeout = NetworkError("verify/intent timed out", NetworkReason.TIMEOUT)
    # First signature is for signaling; every later gate request times out
    fake_client.request_intent_signature.side_effect = [SIGNATURE, timeout, timeout, timeout]

    assert flow.run(quote_request, prover) == S.FAILED
    assert flow.failure == FailureReason.RETRYABLE
    assert flow.resume_state == S.GATE_VERIFYING
    assert flow.error is timeout
    assert S.RELEASING not in flow.history
    assert flow.history[-2:] == [S.GATE_VERIFYING, S.FAILED]
    assert fake_client.request_intent_signature.call_count == 4
    fake_client.fulfill_intent.assert_not_called()


def test_retry_after_gate_failure(flow, fake_client, quote_request, prover):
    timeout = NetworkError("verify/intent timed out", NetworkReason.TIMEOUT)
    fake_client.request_intent_signature.side_effect = [SIGNATURE, timeout, timeout, timeout, SIGNATURE]
    flow.run(quote_request, prover)

    assert flow.retry() is True
    assert flow.state == S.GATE_VERIFYING
    assert flow.failure is None
    assert flow.release() is True
    assert flow.state == S.FULFILLED


def test_no_quotes_is_no_liquidity(flow, fake_client, quote_request, quote_response):
    empty = dict(quote_response, responseObject={"quotes": []})
    fake_client.get_quote.return_value = QuoteResponse.model_validate(empty)

    assert flow.fetch_quote(quote_request) is None
    assert flow.state == S.FAILED
    assert flow.failure == FailureReason.NO_LIQUIDITY
    assert flow.history == [S.QUOTING, S.FAILED]

    fake_client.get_quote.return_value = QuoteResponse.model_validate(quote_response)
    assert flow.retry() is True
    assert flow.state == S.QUOTE_READY


def test_quote_selector(fake_client, quote_request):
    flow = IntentFlow(fake_client, quote_selector=lambda quotes: None)
    flow.fetch_quote(quote_request)
    assert flow.failure == FailureReason.NO_LIQUIDITY


def test_quote_server_errors_are_retried(flow, fake_client, quote_request, quote_response):
    fake_client.get_quote.side_effect = [
        APIError("unavailable", status=503),
        QuoteResponse.model_validate(quote_response),
    ]
    assert flow.fetch_quote(quote_request) is not None
    assert fake_client.get_quote.call_count == 2


def test_quote_client_error_is_not_retried(flow, fake_client, quote_request):
    fake_client.get_quote.side_effect = APIError("bad request", status=400)
    flow.fetch_quote(quote_request)
    assert fake_client.get_quote.call_count == 1
    assert flow.failure == FailureReason.VALIDATION
    with pytest.raises(ValidationError, match="cannot be retried"):
        flow.retry()


def test_signal_revert_is_contract_failure(flow, fake_client, quote_request):
    fake_client.signal_intent.side_effect = ContractError("would revert: deposit not accepting intents")
    flow.fetch_quote(quote_request)

    assert flow.signal() is None
    assert flow.failure == FailureReason.CONTRACT
    assert flow.resume_state == S.SIGNALING
    assert fake_client.signal_intent.call_count == 1

    fake_client.signal_intent.side_effect = None
    assert flow.retry() is True
    assert flow.state == S.AWAITING_PAYMENT


def test_signal_submission_network_error_is_not_resubmitted(flow, fake_client, quote_request):
    fake_client.signal_intent.side_effect = NetworkError("receipt timeout", NetworkReason.TIMEOUT)
    flow.fetch_quote(quote_request)
    flow.signal()
    assert fake_client.signal_intent.call_count == 1
    assert flow.failure == FailureReason.CONTRACT


def test_unknown_processor_is_validation_failure(flow, fake_client, quote_request):
    fake_client.build_sign_intent_request.side_effect = UnknownProcessorError("venmo", [])
    flow.fetch_quote(quote_request)
    flow.signal()
    assert flow.failure == FailureReason.VALIDATION
    with pytest.raises(ValidationError):
        flow.retry()


@pytest.mark.parametrize("rate", ["Infinity", "NaN", "-1.01", "0"])
def test_unusable_quote_rate_is_validation_failure(flow, fake_client, quote_request, quote_response, rate):
    quote_response["responseObject"]["quotes"][0]["conversionRate"] = rate
    fake_client.get_quote.return_value = QuoteResponse.model_validate(quote_response)
    flow.fetch_quote(quote_request)
    assert flow.signal() is None
    assert flow.state == S.FAILED
    assert flow.failure == FailureReason.VALIDATION
    assert flow.resume_state == S.SIGNALING
    assert flow.error.field == "conversionRate"
    fake_client.build_sign_intent_request.assert_not_called()
    fake_client.signal_intent.assert_not_called()


def test_bad_proof_count_is_encoding_failure(flow, quote_request, proof_object):
    advance_to_awaiting_payment(flow, quote_request)

    assert flow.submit_proof([proof_object] * 3) is None
    assert flow.failure == FailureReason.ENCODING
    assert flow.resume_state == S.PROOF_SUBMISSION
    with pytest.raises(ValidationError):
        flow.retry()

    # Resubmitting proofs resumes the flow
    assert flow.submit_proof([proof_object, proof_object]) is not None
    assert flow.state == S.PROOF_SUBMISSION


def test_malformed_proof_is_encoding_failure(flow, quote_request):
    advance_to_awaiting_payment(flow, quote_request)
    flow.submit_proof([{"signatures": []}])
    assert flow.failure == FailureReason.ENCODING


def test_malformed_owner_is_encoding_failure(flow, quote_request, proof_object):
    advance_to_awaiting_payment(flow, quote_request)
    proof_object["claimData"]["owner"] = "not-an-address"

    assert flow.submit_proof([proof_object]) is None
    assert flow.state == S.FAILED
    assert flow.failure == FailureReason.ENCODING
    assert flow.resume_state == S.PROOF_SUBMISSION
    assert isinstance(flow.error, EncodingError)


def test_payment_method_tag(fake_client, quote_request, proof_object):
    flow = IntentFlow(fake_client, payment_method_tag=3)
    advance_to_awaiting_payment(flow, quote_request)
    assert flow.submit_proof([proof_object])[0] == 3


def test_expired_signature_is_rerequested(flow, fake_client, quote_request, proof_object):
    advance_to_awaiting_payment(flow, quote_request)
    flow.submit_proof([proof_object])
    fake_client.request_intent_signature.side_effect = [EXPIRED, SIGNATURE]
    flow.verify_gate()
    assert flow.signature is EXPIRED

    assert flow.release() is True
    assert flow.state == S.FULFILLED
    assert flow.history.count(S.GATE_VERIFYING) == 2
    assert fake_client.fulfill_intent.call_args[1]["verification_data"] == SIGNATURE.verification_data()


def test_release_revert_then_retry(flow, fake_client, quote_request, prover):
    fake_client.fulfill_intent.side_effect = [ContractError("would revert: proof invalid"), MagicMock()]
    assert flow.run(quote_request, prover) == S.FAILED
    assert flow.failure == FailureReason.CONTRACT
    assert flow.resume_state == S.RELEASING

    assert flow.retry() is True
    assert flow.state == S.FULFILLED
    assert fake_client.fulfill_intent.call_count == 2


def test_cancel_from_awaiting_payment(flow, fake_client, quote_request):
    advance_to_awaiting_payment(flow, quote_request)
    assert flow.cancel() is True
    assert flow.state == S.CANCELLED
    assert flow.history[-2:] == [S.CANCELLING, S.CANCELLED]
    fake_client.cancel_intent.assert_called_once_with(TEST_INTENT_HASH)


def test_cancel_after_failed_release(flow, fake_client, quote_request, prover):
    fake_client.fulfill_intent.side_effect = ContractError("would revert")
    flow.run(quote_request, prover)
    assert flow.cancel() is True
    assert flow.state == S.CANCELLED


def test_cancel_before_signal_is_rejected(flow, quote_request):
    flow.fetch_quote(quote_request)
    with pytest.raises(ValidationError, match="Cannot cancel"):
        flow.cancel()


def test_cancel_failure_can_be_retried(flow, fake_client, quote_request):
    advance_to_awaiting_payment(flow, quote_request)
    fake_client.cancel_intent.side_effect = [ContractError("would revert"), MagicMock()]
    assert flow.cancel() is False
    assert flow.resume_state == S.CANCELLING
    assert flow.retry() is True
    assert flow.state == S.CANCELLED


def test_steps_out_of_order(flow, quote_request):
    with pytest.raises(ValidationError):
        flow.signal()
    with pytest.raises(ValidationError):
        flow.release()
    flow.fetch_quote(quote_request)
    with pytest.raises(ValidationError):
        flow.verify_gate()


def test_retry_without_failure(flow):
    with pytest.raises(ValidationError, match="Nothing to retry"):
        flow.retry()


def test_abort_delegates_to_client(flow, fake_client):
    flow.abort()
    fake_client.abort.assert_called_once()


def test_client_new_flow(client):
    flow = client.new_flow(max_attempts=5)
    assert isinstance(flow, IntentFlow)
    assert flow.client is client
    assert flow.max_attempts == 5
