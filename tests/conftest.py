"""
Pytest fixtures for the ZKP2P SDK tests.
"""
import time

import pytest
from web3.providers.rpc import HTTPProvider

from zkp2p_sdk._rate_limited_log import reset_rate_limits
from zkp2p_sdk.payment_methods import default_registry
from tests.test_helpers.client_creator import (
    FUTURE_EXPIRATION,
    TEST_ORCHESTRATOR,
    TEST_RECIPIENT,
    TEST_TOKEN,
    create_mock_w3,
    create_test_client,
)


# Make time.sleep instantaneous so retries don't slow the suite down
@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _reset_shared_state():
    reset_rate_limits()
    default_registry.clear()
    yield
    default_registry.clear()


@pytest.fixture(autouse=True)
def _patch_http_provider(monkeypatch):
    """
    Stub every Web3 HTTP call so no DNS / network traffic is triggered.
    Works for all tests because it is autouse.
    """
    def _dummy(self, method, params=None, _=None):
        if method == "eth_chainId":
            return {"jsonrpc": "2.0", "id": 1, "result": "0x2105"}  # Base
        return {"jsonrpc": "2.0", "id": 1, "result": "0x0"}

    monkeypatch.setattr(HTTPProvider, "make_request", _dummy, raising=True)


@pytest.fixture
def mock_w3():
    return create_mock_w3()


@pytest.fixture
def client(mock_w3):
    """Escrow-direct client (no orchestrator)"""
    return create_test_client(w3=mock_w3)


@pytest.fixture
def orchestrator_client(mock_w3):
    return create_test_client(w3=mock_w3, orchestrator_address=TEST_ORCHESTRATOR)


@pytest.fixture
def proof_object():
    """Prover output in the {claimData, signatures} shape"""
    return {
        "claimData": {
            "provider": "http",
            "parameters": '{"url":"https://venmo.com/api"}',
            "context": '{"extractedParameters":{"amount":"10.00"}}',
            "identifier": "0x" + "11" * 32,
            "owner": "0x0000000000000000000000000000000000000001",
            "timestampS": 1700000000,
            "epoch": 1,
        },
        "signatures": ["0x" + "aa" * 65],
    }


@pytest.fixture
def sign_intent_response():
    return {
        "success": True,
        "message": "ok",
        "responseObject": {
            "signedIntent": "0x" + "5a" * 65,
            "intentData": {"signatureExpiration": str(FUTURE_EXPIRATION)},
        },
        "statusCode": 200,
    }


@pytest.fixture
def quote_response():
    return {
        "success": True,
        "message": "ok",
        "responseObject": {
            "fiat": {"currencyCode": "USD"},
            "token": {"token": TEST_TOKEN},
            "quotes": [
                {
                    "fiatAmount": "10000000",
                    "fiatAmountFormatted": "10.00",
                    "tokenAmount": "9900000",
                    "tokenAmountFormatted": "9.90",
                    "paymentMethod": "venmo",
                    "payeeAddress": "alice",
                    "conversionRate": "1.01",
                    "intent": {
                        "depositId": "42",
                        "processorName": "venmo",
                        "amount": "9900000",
                        "toAddress": TEST_RECIPIENT,
                        "payeeDetails": "0x" + "77" * 32,
                        "processorIntentData": {},
                        "fiatCurrencyCode": "USD",
                        "chainId": "8453",
                    },
                }
            ],
            "fees": {"zkp2pFee": "0", "zkp2pFeeFormatted": "0.00"},
        },
        "statusCode": 200,
    }
