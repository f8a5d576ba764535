"""
ZKP2P SDK - Python client for the ZKP2P escrow protocol.
"""
from .client import CreateDepositResult, SignalResult, Zkp2pClient
from .config import ClientSettings, NetworkConfig
from .exceptions import (
    APIError,
    ContractError,
    EncodingError,
    ErrorCode,
    InvalidProofCountError,
    NetworkError,
    ParseError,
    TrackerStateError,
    UnknownProcessorError,
    ValidationError,
    Zkp2pError,
)
from .flow import FailureReason, IntentFlow, IntentState
from .gating import GatingServiceClient, GatingSignature, SignIntentRequest
from .models import Quote, QuoteRequest, QuoteResponse, TxReceipt
from .payment_methods import PaymentMethodCatalog, register_catalog
from .proofs import ProofBundle, ReclaimProof, parse_reclaim_proxy_proof
from .tracker import StepStatus, SubmissionGuard, TransactionTracker
from .version import __version__

__all__ = [
    "Zkp2pClient",
    "SignalResult",
    "CreateDepositResult",
    "ClientSettings",
    "NetworkConfig",
    "IntentFlow",
    "IntentState",
    "FailureReason",
    "GatingServiceClient",
    "GatingSignature",
    "SignIntentRequest",
    "Quote",
    "QuoteRequest",
    "QuoteResponse",
    "TxReceipt",
    "PaymentMethodCatalog",
    "register_catalog",
    "ProofBundle",
    "ReclaimProof",
    "parse_reclaim_proxy_proof",
    "StepStatus",
    "SubmissionGuard",
    "TransactionTracker",
    "Zkp2pError",
    "ErrorCode",
    "ValidationError",
    "NetworkError",
    "APIError",
    "ContractError",
    "EncodingError",
    "ParseError",
    "UnknownProcessorError",
    "InvalidProofCountError",
    "TrackerStateError",
    "__version__",
]
