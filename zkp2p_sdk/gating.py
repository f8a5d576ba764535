"""
Gating-service signer client.

The gating service signs an intent's exact parameters so the orchestrator
contract will accept it. A signature is only valid for the tuple it was
requested for and only until its expiration timestamp.
"""
import logging
import threading
import time
from typing import Any, Dict, Optional

from eth_abi import encode
from pydantic import BaseModel, Field

from ._http import auth_headers, build_session, request_json, validate_url
from .bytes32 import hex_to_bytes
from .exceptions import APIError, APIReason, EncodingError, NetworkError, NetworkReason

logger = logging.getLogger(__name__)

VERIFY_INTENT_PATH = "/v2/verify/intent"
DEFAULT_TIMEOUT_MS = 15000


class SignIntentRequest(BaseModel):
    """The intent tuple a gating signature is bound to."""
    processor_name: str = Field(..., alias="processorName")
    payee_details: str = Field(..., alias="payeeDetails")
    deposit_id: int = Field(..., alias="depositId")
    amount: int
    to_address: str = Field(..., alias="toAddress")
    payment_method: str = Field(..., alias="paymentMethod")
    fiat_currency: str = Field(..., alias="fiatCurrency")
    conversion_rate: int = Field(..., alias="conversionRate")
    chain_id: int = Field(..., alias="chainId")
    orchestrator_address: str = Field(..., alias="orchestratorAddress")
    escrow_address: str = Field(..., alias="escrowAddress")

    class Config:
        populate_by_name = True

    def to_payload(self) -> Dict[str, str]:
        """camelCase JSON body; integers as decimal strings."""
        payload = self.model_dump(by_alias=True)
        for key in ("depositId", "amount", "conversionRate", "chainId"):
            payload[key] = str(payload[key])
        return payload


class GatingSignature(BaseModel):
    signature: bytes
    signature_expiration: int = Field(..., alias="signatureExpiration")

    class Config:
        populate_by_name = True

    @property
    def signature_hex(self) -> str:
        return "0x" + self.signature.hex()

    def is_expired(self, now: Optional[int] = None) -> bool:
        current = int(time.time()) if now is None else now
        return self.signature_expiration <= current

    def verification_data(self) -> bytes:
        """ABI-encoded ``(bytes signature, uint256 expiration)`` for fulfillment."""
        return encode(["bytes", "uint256"], [self.signature, self.signature_expiration])


def _parse_expiration(value: Any) -> int:
    # Never via float: expirations may arrive as large decimal or hex strings
    if isinstance(value, bool):
        raise ValueError("boolean expiration")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    return int(text, 16) if text.lower().startswith("0x") else int(text, 10)


def _object_field(data: Dict[str, Any], parent: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = parent.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise APIError(
            f"verify/intent {key} is not an object",
            status=data.get("statusCode"),
            body=str(data),
            reason=APIReason.MALFORMED_RESPONSE,
        )
    return value


def parse_sign_intent_response(data: Dict[str, Any]) -> GatingSignature:
    """
    Extract the signature and its expiration from the response envelope.

    The expiration is read from responseObject.intentData first and from
    responseObject itself second.
    """
    if not isinstance(data, dict):
        raise APIError("verify/intent returned a non-object body", body=str(data), reason=APIReason.MALFORMED_RESPONSE)
    response_object = _object_field(data, data, "responseObject")
    signature = response_object.get("signedIntent")
    intent_data = _object_field(data, response_object, "intentData")
    expiration = intent_data.get("signatureExpiration")
    if expiration is None:
        expiration = response_object.get("signatureExpiration")

    if not signature or expiration is None:
        raise APIError(
            "verify/intent missing signature or expiration",
            status=data.get("statusCode"),
            body=str(data),
            reason=APIReason.MALFORMED_RESPONSE,
        )
    try:
        return GatingSignature(
            signature=hex_to_bytes(signature, field="signedIntent"),
            signature_expiration=_parse_expiration(expiration),
        )
    except (ValueError, EncodingError) as e:
        raise APIError(
            f"verify/intent returned an unreadable signature or expiration: {e}",
            status=data.get("statusCode"),
            body=str(data),
            reason=APIReason.MALFORMED_RESPONSE,
        ) from e


class GatingServiceClient:
    """
    Client for the gating service's intent verification endpoint.

    Each call is bounded by a hard timeout. ``abort()`` tears down the
    session from another thread; a call in flight at that moment fails with
    NetworkError(ABORTED) and its response is never returned.
    """

    def __init__(
        self,
        base_api_url: str,
        api_key: Optional[str] = None,
        authorization_token: Optional[str] = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        session=None,
    ):
        self.base_api_url = validate_url("base_api_url", base_api_url)
        self.api_key = api_key
        self.authorization_token = authorization_token
        self.timeout_ms = timeout_ms
        self._session = session or build_session()
        self._owns_session = session is None
        self._lock = threading.RLock()
        self._generation = 0

    def request_intent_signature(self, request: SignIntentRequest, timeout_ms: Optional[int] = None) -> GatingSignature:
        """
        Obtain a gating signature for an intent tuple.

        Raises:
            NetworkError: TIMEOUT when the hard timeout elapses, ABORTED after abort()
            APIError: On non-2xx, or MALFORMED_RESPONSE if fields are missing
        """
        timeout = (timeout_ms if timeout_ms is not None else self.timeout_ms) / 1000.0
        url = f"{self.base_api_url}{VERIFY_INTENT_PATH}"
        with self._lock:
            generation = self._generation
            session = self._session

        logger.debug(
            f"Requesting gating signature for deposit {request.deposit_id}, "
            f"amount {request.amount}, processor {request.processor_name}"
        )
        try:
            data = request_json(
                session,
                "POST",
                url,
                endpoint=VERIFY_INTENT_PATH,
                headers=auth_headers(self.api_key, self.authorization_token),
                timeout=timeout,
                body=request.to_payload(),
            )
        except NetworkError as e:
            if self._aborted_since(generation):
                raise NetworkError("Gating signature request was aborted", NetworkReason.ABORTED) from e
            raise

        if self._aborted_since(generation):
            raise NetworkError("Gating signature request was aborted", NetworkReason.ABORTED)

        signature = parse_sign_intent_response(data)
        logger.info(f"Obtained gating signature expiring at {signature.signature_expiration}")
        return signature

    def _aborted_since(self, generation: int) -> bool:
        with self._lock:
            return self._generation != generation

    def abort(self) -> None:
        """Abort in-flight requests and start a fresh session for later calls."""
        with self._lock:
            self._generation += 1
            old = self._session
            self._session = build_session()
            self._owns_session = True
        old.close()
        logger.debug("Aborted in-flight gating service requests")

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
