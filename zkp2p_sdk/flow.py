"""
Intent lifecycle state machine.

Drives one intent from quote to release (or cancellation):

    QUOTING -> QUOTE_READY -> SIGNALING -> SIGNALED -> AWAITING_PAYMENT
        -> PROOF_SUBMISSION -> GATE_VERIFYING -> RELEASING -> FULFILLED

with SIGNALED / AWAITING_PAYMENT -> CANCELLING -> CANCELLED, and any state
-> FAILED. Steps never raise on SDK errors; they record the failure, its
reason and the state to resume from, and return.
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .exceptions import (
    ContractError,
    EncodingError,
    InvalidProofCountError,
    NetworkError,
    ParseError,
    ValidationError,
    Zkp2pError,
    is_retryable,
)
from .gating import GatingSignature, SignIntentRequest
from .models import Quote, QuoteRequest
from .proofs import ProofBundle, ReclaimProof, parse_reclaim_proxy_proof
from .retry import StepResult, call_with_retry

logger = logging.getLogger(__name__)


class IntentState(str, Enum):
    QUOTING = "QUOTING"
    QUOTE_READY = "QUOTE_READY"
    SIGNALING = "SIGNALING"
    SIGNALED = "SIGNALED"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PROOF_SUBMISSION = "PROOF_SUBMISSION"
    GATE_VERIFYING = "GATE_VERIFYING"
    RELEASING = "RELEASING"
    FULFILLED = "FULFILLED"
    CANCELLING = "CANCELLING"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


TERMINAL_STATES = (IntentState.FULFILLED, IntentState.CANCELLED, IntentState.FAILED)


class FailureReason(str, Enum):
    NO_LIQUIDITY = "NO_LIQUIDITY"
    RETRYABLE = "RETRYABLE"
    CONTRACT = "CONTRACT"
    ENCODING = "ENCODING"
    VALIDATION = "VALIDATION"


RETRY_ALLOWED = (FailureReason.NO_LIQUIDITY, FailureReason.RETRYABLE, FailureReason.CONTRACT)


def failure_reason_for(error: Zkp2pError) -> FailureReason:
    if is_retryable(error):
        return FailureReason.RETRYABLE
    if isinstance(error, (EncodingError, InvalidProofCountError)):
        return FailureReason.ENCODING
    if isinstance(error, (ContractError, ParseError)):
        return FailureReason.CONTRACT
    return FailureReason.VALIDATION


def _submission_reason(error: Zkp2pError) -> Optional[FailureReason]:
    # A transport failure mid-submission leaves the transaction outcome unknown
    if isinstance(error, NetworkError):
        return FailureReason.CONTRACT
    return None


QuoteSelector = Callable[[List[Quote]], Optional[Quote]]
Prover = Callable[["IntentFlow"], Sequence[Union[ReclaimProof, Dict[str, Any]]]]


class IntentFlow:
    """
    One intent's lifecycle on top of a Zkp2pClient.

    Off-chain reads (quote, gating signature) are retried up to
    ``max_attempts`` with linear backoff. On-chain submissions are never
    resubmitted automatically: a failed submission lands in FAILED with
    its resume state recorded, and ``retry()`` re-enters that state with a
    fresh transaction tracker.
    """

    def __init__(
        self,
        client,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        quote_selector: Optional[QuoteSelector] = None,
        payment_method_tag: Optional[int] = None,
    ):
        self.client = client
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.quote_selector = quote_selector or (lambda quotes: quotes[0] if quotes else None)
        self.payment_method_tag = payment_method_tag

        self.state: Optional[IntentState] = None
        self.history: List[IntentState] = []
        self.failure: Optional[FailureReason] = None
        self.error: Optional[Zkp2pError] = None
        self.resume_state: Optional[IntentState] = None

        self.quote_request: Optional[QuoteRequest] = None
        self.quote: Optional[Quote] = None
        self.sign_request: Optional[SignIntentRequest] = None
        self.signature: Optional[GatingSignature] = None
        self.intent_hash: Optional[str] = None
        self.proof_bytes: Optional[bytes] = None
        self.receipts: Dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"IntentFlow(state={self.state}, intent_hash={self.intent_hash}, failure={self.failure})"

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _enter(self, state: IntentState) -> None:
        logger.debug(f"Intent flow: {self.state} -> {state}")
        self.state = state
        self.history.append(state)

    def _begin(self, step: IntentState, *allowed: IntentState) -> None:
        resuming = self.state == IntentState.FAILED and self.resume_state == step
        if self.state not in allowed and not resuming:
            raise ValidationError(f"Cannot enter {step.value} from {self.state}", field="state")
        self.failure = None
        self.error = None
        self.resume_state = None
        self._enter(step)

    def _fail(self, error: Zkp2pError, resume_state: IntentState, reason: Optional[FailureReason] = None) -> None:
        self.failure = reason or failure_reason_for(error)
        self.error = error
        self.resume_state = resume_state
        logger.warning(f"Intent flow failed in {resume_state.value} ({self.failure.value}): {error}")
        self._enter(IntentState.FAILED)

    def _with_retry(self, fn: Callable[[], Any], description: str) -> StepResult:
        return call_with_retry(fn, self.max_attempts, self.backoff_seconds, description)

    # ---------- Steps ----------

    def fetch_quote(self, request: QuoteRequest) -> Optional[Quote]:
        self._begin(IntentState.QUOTING, None, IntentState.QUOTE_READY)
        self.quote_request = request
        result = self._with_retry(lambda: self.client.get_quote(request), "quote")
        if not result.ok:
            self._fail(result.error, IntentState.QUOTING)
            return None

        quote = self.quote_selector(result.value.quotes)
        if quote is None:
            self._fail(
                ValidationError("No quotes available for this request", field="quotes"),
                IntentState.QUOTING,
                FailureReason.NO_LIQUIDITY,
            )
            return None
        self.quote = quote
        self._enter(IntentState.QUOTE_READY)
        return quote

    def signal(self) -> Optional[str]:
        """Obtain a gating signature and signal the quoted intent on-chain."""
        self._begin(IntentState.SIGNALING, IntentState.QUOTE_READY)
        intent = self.quote.intent
        try:
            self.sign_request = self.client.build_sign_intent_request(
                deposit_id=int(intent.deposit_id),
                amount=int(intent.amount),
                to_address=intent.to_address,
                processor_name=intent.processor_name,
                payee_details=intent.payee_details,
                fiat_currency=intent.fiat_currency_code,
                conversion_rate=self.quote.onchain_conversion_rate,
            )
        except ValueError as e:
            self._fail(ValidationError(f"Quote has an unusable intent: {e}", field="quote"), IntentState.SIGNALING)
            return None
        except Zkp2pError as e:
            self._fail(e, IntentState.SIGNALING)
            return None

        result = self._with_retry(lambda: self.client.request_intent_signature(self.sign_request), "gating signature")
        if not result.ok:
            self._fail(result.error, IntentState.SIGNALING)
            return None

        try:
            signaled = self.client.signal_intent(self.sign_request, signature=result.value)
        except Zkp2pError as e:
            # Submissions are not resubmitted automatically
            self._fail(e, IntentState.SIGNALING, _submission_reason(e))
            return None

        self.intent_hash = signaled.intent_hash
        self.receipts["signalIntent"] = signaled.receipt
        self._enter(IntentState.SIGNALED)
        self._enter(IntentState.AWAITING_PAYMENT)
        return self.intent_hash

    def submit_proof(self, proofs: Sequence[Union[ReclaimProof, Dict[str, Any]]], payment_method: Optional[int] = None) -> Optional[bytes]:
        """Encode the payment proof(s) for fulfillment."""
        self._begin(IntentState.PROOF_SUBMISSION, IntentState.AWAITING_PAYMENT)
        try:
            parsed = [p if isinstance(p, ReclaimProof) else parse_reclaim_proxy_proof(p) for p in proofs]
            tag = payment_method if payment_method is not None else self.payment_method_tag
            self.proof_bytes = ProofBundle(proofs=parsed, payment_method=tag).encode()
        except (EncodingError, InvalidProofCountError, ValidationError) as e:
            self._fail(e, IntentState.PROOF_SUBMISSION, FailureReason.ENCODING)
            return None
        logger.info(f"Encoded {len(parsed)} proof(s) for intent {self.intent_hash}")
        return self.proof_bytes

    def verify_gate(self) -> Optional[GatingSignature]:
        """Obtain a fresh gating signature bound to the signaled intent's tuple."""
        self._begin(IntentState.GATE_VERIFYING, IntentState.PROOF_SUBMISSION, IntentState.GATE_VERIFYING)
        self.signature = None
        result = self._with_retry(lambda: self.client.request_intent_signature(self.sign_request), "gating signature")
        if not result.ok:
            self._fail(result.error, IntentState.GATE_VERIFYING)
            return None
        self.signature = result.value
        return self.signature

    def release(self) -> bool:
        """Submit fulfillment; an expired signature is re-requested first."""
        resuming = self.state == IntentState.FAILED and self.resume_state == IntentState.RELEASING
        if self.state != IntentState.GATE_VERIFYING and not resuming:
            raise ValidationError(f"Cannot enter {IntentState.RELEASING.value} from {self.state}", field="state")

        if self.signature is None or self.signature.is_expired():
            logger.info("Gating signature missing or expired, requesting a new one")
            if resuming:
                self.resume_state = IntentState.GATE_VERIFYING
            if self.verify_gate() is None:
                return False

        self._begin(IntentState.RELEASING, IntentState.GATE_VERIFYING)
        try:
            receipt = self.client.fulfill_intent(
                self.intent_hash,
                self.proof_bytes,
                verification_data=self.signature.verification_data(),
            )
        except Zkp2pError as e:
            self._fail(e, IntentState.RELEASING, _submission_reason(e))
            return False

        self.receipts["fulfillIntent"] = receipt
        self._enter(IntentState.FULFILLED)
        return True

    def cancel(self) -> bool:
        """Cancel the signaled intent on-chain."""
        can_cancel = self.state in (IntentState.SIGNALED, IntentState.AWAITING_PAYMENT) or (
            self.state == IntentState.FAILED and self.intent_hash is not None
        )
        if not can_cancel:
            raise ValidationError(f"Cannot cancel from {self.state}", field="state")
        self.failure = None
        self.error = None
        self.resume_state = None
        self._enter(IntentState.CANCELLING)
        try:
            receipt = self.client.cancel_intent(self.intent_hash)
        except Zkp2pError as e:
            self._fail(e, IntentState.CANCELLING, _submission_reason(e))
            return False
        self.receipts["cancelIntent"] = receipt
        self._enter(IntentState.CANCELLED)
        return True

    def retry(self) -> bool:
        """
        Re-enter the state a failure was recorded in.

        Returns:
            Whether the re-entered step succeeded

        Raises:
            ValidationError: If the flow has not failed, or failed for a reason retry cannot fix
        """
        if self.state != IntentState.FAILED or self.resume_state is None:
            raise ValidationError(f"Nothing to retry in state {self.state}", field="state")
        if self.failure not in RETRY_ALLOWED:
            raise ValidationError(f"A {self.failure.value} failure cannot be retried", field="state")

        resume = self.resume_state
        logger.info(f"Retrying intent flow at {resume.value}")
        if resume == IntentState.QUOTING:
            return self.fetch_quote(self.quote_request) is not None
        if resume == IntentState.SIGNALING:
            return self.signal() is not None
        if resume == IntentState.GATE_VERIFYING:
            return self.verify_gate() is not None
        if resume == IntentState.RELEASING:
            return self.release()
        if resume == IntentState.CANCELLING:
            self.resume_state = None
            return self.cancel()
        raise ValidationError(f"Cannot resume at {resume.value}", field="state")

    def abort(self) -> None:
        """Abort in-flight quote and gating requests."""
        self.client.abort()

    def run(self, quote_request: QuoteRequest, prover: Prover) -> IntentState:
        """
        Drive the flow from quote to release.

        Args:
            quote_request: Quote to request
            prover: Called once the intent is signaled; performs (or waits for)
                the fiat payment and returns one or two proofs

        Returns:
            The state the flow stopped in
        """
        if self.fetch_quote(quote_request) is None:
            return self.state
        if self.signal() is None:
            return self.state
        if self.submit_proof(prover(self)) is None:
            return self.state
        if self.verify_gate() is None:
            return self.state
        self.release()
        return self.state
