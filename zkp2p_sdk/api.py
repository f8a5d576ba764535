"""
Client for the curator API (quotes and maker payee registration).
"""
import logging
import threading
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from ._http import auth_headers, build_session, request_json, validate_url
from .exceptions import APIError, APIReason, NetworkError, NetworkReason, ValidationError
from .models import QuoteRequest, QuoteResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 15000


class CuratorAPIClient:
    """
    HTTP client for the curator service.

    Calls are single attempts with a hard timeout; retry policy belongs to
    the caller (see ``retry.call_with_retry``).
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
        self._session = session or build_session(retry_count=1)
        self._owns_session = session is None
        self._lock = threading.RLock()
        self._generation = 0

    def _request(self, method: str, endpoint: str, body: Optional[Dict[str, Any]] = None, timeout_ms: Optional[int] = None) -> Dict[str, Any]:
        with self._lock:
            generation = self._generation
            session = self._session
        try:
            data = request_json(
                session,
                method,
                f"{self.base_api_url}{endpoint}",
                endpoint=endpoint,
                headers=auth_headers(self.api_key, self.authorization_token),
                timeout=(timeout_ms or self.timeout_ms) / 1000.0,
                body=body,
            )
        except NetworkError as e:
            if self._generation != generation:
                raise NetworkError(f"Request to {endpoint} was aborted", NetworkReason.ABORTED) from e
            raise
        if self._generation != generation:
            raise NetworkError(f"Request to {endpoint} was aborted", NetworkReason.ABORTED)
        return data

    def get_quote(self, request: QuoteRequest, timeout_ms: Optional[int] = None) -> QuoteResponse:
        """
        Fetch quotes for an exact fiat (default) or exact token amount.

        Raises:
            ValidationError: If quotes_to_return is not a positive integer
            NetworkError / APIError: On transport or HTTP failure
        """
        if request.quotes_to_return is not None and request.quotes_to_return < 1:
            raise ValidationError("quotesToReturn must be a positive integer", field="quotesToReturn")

        endpoint = "/v1/quote/exact-fiat" if request.is_exact_fiat else "/v1/quote/exact-token"
        if request.quotes_to_return:
            endpoint += f"?quotesToReturn={request.quotes_to_return}"

        body = request.model_dump(by_alias=True, exclude_none=True, exclude={"amount", "is_exact_fiat", "quotes_to_return"})
        body["exactFiatAmount" if request.is_exact_fiat else "exactTokenAmount"] = request.amount

        logger.debug(f"Requesting quote: {body}")
        data = self._request("POST", endpoint, body=body, timeout_ms=timeout_ms)
        try:
            response = QuoteResponse.model_validate(data)
        except PydanticValidationError as e:
            raise APIError(
                f"Malformed quote response: {e.error_count()} invalid field(s)",
                status=data.get("statusCode"),
                body=str(data),
                reason=APIReason.MALFORMED_RESPONSE,
            ) from e
        logger.info(f"Received {len(response.quotes)} quote(s)")
        return response

    def post_deposit_details(self, processor_name: str, deposit_data: Dict[str, str], timeout_ms: Optional[int] = None) -> str:
        """
        Register a maker's payee details and return their on-chain hash.

        Raises:
            APIError: UNSUCCESSFUL if the service declines, MALFORMED_RESPONSE if the hash is missing
        """
        data = self._request(
            "POST",
            "/v1/makers/create",
            body={"processorName": processor_name, "depositData": deposit_data},
            timeout_ms=timeout_ms,
        )
        if not data.get("success", False):
            raise APIError(
                data.get("message") or "Failed to create deposit details",
                status=data.get("statusCode"),
                body=str(data),
                reason=APIReason.UNSUCCESSFUL,
            )
        hashed = (data.get("responseObject") or {}).get("hashedOnchainId")
        if not hashed:
            raise APIError("Missing hashedOnchainId in response", body=str(data), reason=APIReason.MALFORMED_RESPONSE)
        return hashed

    def abort(self) -> None:
        """Abort in-flight requests; later calls use a fresh session."""
        with self._lock:
            self._generation += 1
            old = self._session
            self._session = build_session(retry_count=1)
            self._owns_session = True
        old.close()

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
