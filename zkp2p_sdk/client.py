"""
Zkp2pClient - Main client for the ZKP2P escrow protocol.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import requests
from eth_abi import encode
from eth_account import Account
from eth_account.signers.base import BaseAccount
from eth_utils import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception
from web3.logs import DISCARD

from .api import CuratorAPIClient
from .config import DEFAULT_API_TIMEOUT_MS, PRODUCTION, ClientSettings, NetworkConfig
from ._http import validate_url
from .contracts import (
    ERC20_ABI,
    ESCROW_ABI,
    FULFILL_INTENT_COMPONENTS,
    ORCHESTRATOR_ABI,
    SIGNAL_INTENT_COMPONENTS,
    function_output,
    struct_to_dict,
)
from .exceptions import ContractError, NetworkError, NetworkReason, ValidationError
from .flow import IntentFlow
from .gas import BaseFeeCache
from .gating import GatingServiceClient, GatingSignature, SignIntentRequest
from .models import QuoteRequest, QuoteResponse, TxReceipt, conversion_rate_to_onchain
from .payment_methods import (
    CatalogLookup,
    default_registry,
    resolve_fiat_currency_bytes32,
    resolve_payment_method_hash,
    resolve_payment_method_hash_from_catalog,
)
from .proofs import ProofBundle
from .tracker import SubmissionGuard, TransactionTracker
from .transactions import SentTransaction, Signer, TransactionSender, rpc_error_message
from .views import Deposit, IntentView, parse_deposit_view, parse_intent_view, to_int

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass
class SignalResult:
    intent_hash: str
    receipt: TxReceipt
    signature: GatingSignature


@dataclass
class CreateDepositResult:
    receipt: TxReceipt
    payee_details_hashes: List[str]
    approve_receipt: Optional[TxReceipt] = None


def _component_tuple(components: Sequence[Dict[str, Any]], values: Mapping[str, Any]) -> tuple:
    return tuple(values[c["name"]] for c in components)


def _to_bytes(value: Union[bytes, str, None]) -> bytes:
    if value is None:
        return b""
    return bytes(HexBytes(value))


class Zkp2pClient:
    """
    Client for the ZKP2P escrow and orchestrator contracts.

    This client handles:
    1. Reading deposits and intents from the escrow
    2. Quotes and gating signatures from the curator API
    3. Signaling, fulfilling, cancelling and releasing intents
    4. Creating and withdrawing deposits (maker side)

    Writes go to the orchestrator when one is configured, otherwise to the
    escrow directly.
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        chain_id: int = 8453,
        priv_key: Optional[str] = None,
        signer: Optional[Signer] = None,
        escrow_address: Optional[str] = None,
        orchestrator_address: Optional[str] = None,
        base_api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        authorization_token: Optional[str] = None,
        env: str = PRODUCTION,
        catalog: Optional[CatalogLookup] = None,
        timeout_ms: int = DEFAULT_API_TIMEOUT_MS,
        enforce_single_intent: bool = True,
        receipt_timeout: float = 120,
        poll_interval: float = 0.1,
        w3: Optional[Web3] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the Zkp2pClient

        Args:
            rpc_url: RPC endpoint URL (defaults to the network's public RPC)
            chain_id: 8453 for Base, 84532 for Base Sepolia
            priv_key: Private key (optional if signer provided)
            signer: Custom signer object (optional if priv_key provided)
            escrow_address: Escrow contract override
            orchestrator_address: Orchestrator contract override
            base_api_url: Curator API base URL (defaults to the network's)
            api_key: Curator API key, sent as x-api-key
            authorization_token: Bearer token for the curator API
            env: 'production' or 'staging'
            catalog: Authoritative payment method catalog; looked up in the
                default registry for (env, network) on each use when omitted
            timeout_ms: Timeout for curator API requests in milliseconds
            enforce_single_intent: Refuse to signal while the account has an open intent
            receipt_timeout: Seconds to wait for a transaction receipt
            poll_interval: Receipt polling interval in seconds
            w3: Pre-built Web3 instance (rpc_url is ignored when given)
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ValueError: If neither priv_key nor signer is provided
            ValidationError: If a URL is not https (unless local) or the chain is unsupported
        """
        if not priv_key and not signer:
            raise ValueError("Either priv_key or signer must be provided")

        self.logger = logger or logging.getLogger(__name__)
        self.chain_id = chain_id
        self.env = env
        self.network_name = NetworkConfig.network_key(chain_id, env)
        self.network = NetworkConfig.for_chain(chain_id, env)

        self.rpc_url = NetworkConfig.get_rpc_url(self.network_name, rpc_url)
        if w3 is None:
            validate_url("rpc_url", self.rpc_url)
            w3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": timeout_ms / 1000.0}))
        self.w3 = w3

        self.account: Optional[BaseAccount] = None
        self.signer = signer
        if priv_key:
            self.account = Account.from_key(priv_key)

        self.escrow_address = to_checksum_address(escrow_address or self.network["escrow"])
        orchestrator = orchestrator_address or self.network.get("orchestrator")
        self.orchestrator_address = to_checksum_address(orchestrator) if orchestrator else None

        self.escrow = self.w3.eth.contract(address=self.escrow_address, abi=ESCROW_ABI)
        self.orchestrator = (
            self.w3.eth.contract(address=self.orchestrator_address, abi=ORCHESTRATOR_ABI)
            if self.orchestrator_address
            else None
        )

        api_url = base_api_url or self.network["apiUrl"]
        self.gating = GatingServiceClient(api_url, api_key, authorization_token, timeout_ms=timeout_ms)
        self.api = CuratorAPIClient(api_url, api_key, authorization_token, timeout_ms=timeout_ms)

        self._catalog = catalog
        self.enforce_single_intent = enforce_single_intent
        self.guard = SubmissionGuard()
        self.gas_cache = BaseFeeCache()
        self.sender = TransactionSender(
            self.w3,
            account=self.account,
            signer=self.signer,
            gas_cache=self.gas_cache,
            receipt_timeout=receipt_timeout,
            poll_latency=poll_interval,
        )

    @classmethod
    def from_settings(cls, settings: Optional[ClientSettings] = None, **kwargs) -> "Zkp2pClient":
        """Build a client from ClientSettings (by default read from ZKP2P_* variables)."""
        settings = settings or ClientSettings.from_env()
        params = dict(
            rpc_url=settings.rpc_url,
            chain_id=settings.chain_id,
            priv_key=settings.private_key,
            base_api_url=settings.base_api_url,
            api_key=settings.api_key,
            authorization_token=settings.authorization_token,
            env=settings.env,
            timeout_ms=settings.api_timeout_ms,
        )
        params.update(kwargs)
        return cls(**params)

    @property
    def _catalog_network(self) -> str:
        return "base_sepolia" if self.network_name == "base_sepolia" else "base"

    @property
    def catalog(self) -> Optional[CatalogLookup]:
        """The injected catalog, or the one registered for this env and network."""
        if self._catalog is not None:
            return self._catalog
        return default_registry.lookup(self.env, self._catalog_network)

    @catalog.setter
    def catalog(self, catalog: Optional[CatalogLookup]) -> None:
        self._catalog = catalog

    @property
    def address(self) -> str:
        """
        Get the account address

        Returns:
            Ethereum address as string
        """
        if self.account:
            return self.account.address
        return self.signer.address

    @property
    def uses_orchestrator(self) -> bool:
        return self.orchestrator is not None

    # ---------- Reads ----------

    def _read(self, contract_fn, description: str) -> Any:
        try:
            return contract_fn.call()
        except ContractLogicError as e:
            raise ContractError(f"{description} reverted: {e}", revert_reason=str(e)) from e
        except requests.RequestException as e:
            raise NetworkError(f"RPC unreachable during {description}: {e}", NetworkReason.CONNECTION) from e
        except (Web3Exception, ValueError) as e:
            raise ContractError(f"{description} failed: {rpc_error_message(e)}") from e

    def get_deposit(self, deposit_id: int) -> Deposit:
        raw = self._read(self.escrow.functions.getDeposit(deposit_id), f"getDeposit({deposit_id})")
        return parse_deposit_view(struct_to_dict(function_output(ESCROW_ABI, "getDeposit"), raw))

    def get_intent(self, intent_hash: str) -> IntentView:
        raw = self._read(self.escrow.functions.getIntent(_to_bytes(intent_hash)), f"getIntent({intent_hash})")
        return parse_intent_view(struct_to_dict(function_output(ESCROW_ABI, "getIntent"), raw))

    def get_account_intent(self, account: Optional[str] = None) -> Optional[str]:
        """Open intent hash for an account (defaults to ours), or None."""
        owner = to_checksum_address(account or self.address)
        raw = self._read(self.escrow.functions.getAccountIntent(owner), "getAccountIntent")
        intent_hash = struct_to_dict({"type": "bytes32"}, raw)
        return None if int(intent_hash, 16) == 0 else intent_hash

    def get_deposit_counter(self) -> int:
        return to_int(self._read(self.escrow.functions.depositCounter(), "depositCounter"), "depositCounter")

    # ---------- Curator API ----------

    def get_quote(self, request: QuoteRequest) -> QuoteResponse:
        return self.api.get_quote(request)

    def build_sign_intent_request(
        self,
        deposit_id: int,
        amount: int,
        to_address: str,
        processor_name: str,
        payee_details: str,
        fiat_currency: str,
        conversion_rate: Union[int, str],
        payment_method: Optional[str] = None,
    ) -> SignIntentRequest:
        """
        Build the intent tuple a gating signature is bound to.

        The payment method is resolved from the authoritative catalog when
        the client has one; otherwise the hashed-name fallback is used.
        """
        if amount <= 0:
            raise ValidationError("amount must be positive", field="amount")
        if payment_method is None:
            catalog = self.catalog
            if catalog is not None:
                payment_method = resolve_payment_method_hash_from_catalog(processor_name, catalog)
            else:
                payment_method = resolve_payment_method_hash(processor_name, self.env, self._catalog_network)
        if isinstance(conversion_rate, str):
            conversion_rate = conversion_rate_to_onchain(conversion_rate)
        return SignIntentRequest(
            processor_name=processor_name,
            payee_details=payee_details,
            deposit_id=deposit_id,
            amount=amount,
            to_address=to_checksum_address(to_address),
            payment_method=payment_method,
            fiat_currency=resolve_fiat_currency_bytes32(fiat_currency),
            conversion_rate=conversion_rate,
            chain_id=self.chain_id,
            orchestrator_address=self.orchestrator_address or self.escrow_address,
            escrow_address=self.escrow_address,
        )

    def request_intent_signature(self, request: SignIntentRequest, timeout_ms: Optional[int] = None) -> GatingSignature:
        return self.gating.request_intent_signature(request, timeout_ms=timeout_ms)

    # ---------- Writes ----------

    def _submit(self, key: str, action: str, contract_fn, tracker: Optional[TransactionTracker] = None) -> SentTransaction:
        tracker = tracker or self.guard.begin(key, action)
        try:
            return self.sender.send(contract_fn, tracker)
        finally:
            self.guard.complete(key, action, tracker)

    def signal_intent(
        self,
        request: SignIntentRequest,
        signature: Optional[GatingSignature] = None,
        referrer: Optional[str] = None,
        referrer_fee: int = 0,
        post_intent_hook: Optional[str] = None,
        data: bytes = b"",
    ) -> SignalResult:
        """
        Signal an intent against a deposit.

        Args:
            request: The intent tuple, as built by build_sign_intent_request
            signature: Gating signature for exactly this tuple; requested when omitted
            referrer: Referrer address
            referrer_fee: Referrer fee
            post_intent_hook: Hook contract called after fulfillment
            data: Opaque data for the hook

        Returns:
            The intent hash read from the IntentSignaled event, the receipt
            and the signature used

        Raises:
            ValidationError: If the account already has an open intent (when enforced)
            ContractError: On revert, or if no IntentSignaled event is in the receipt
        """
        if self.enforce_single_intent:
            existing = self.get_account_intent()
            if existing:
                raise ValidationError(
                    f"Account {self.address} already has an open intent {existing}; "
                    "fulfill or cancel it first",
                    field="owner",
                )

        if signature is None:
            signature = self.request_intent_signature(request)
        if signature.is_expired():
            raise ValidationError("Gating signature has expired; request a new one", field="signatureExpiration")

        if self.uses_orchestrator:
            params = {
                "escrow": request.escrow_address,
                "depositId": request.deposit_id,
                "amount": request.amount,
                "to": request.to_address,
                "paymentMethod": _to_bytes(request.payment_method),
                "fiatCurrency": _to_bytes(request.fiat_currency),
                "conversionRate": request.conversion_rate,
                "referrer": to_checksum_address(referrer) if referrer else ZERO_ADDRESS,
                "referrerFee": referrer_fee,
                "gatingServiceSignature": signature.signature,
                "signatureExpiration": signature.signature_expiration,
                "postIntentHook": to_checksum_address(post_intent_hook) if post_intent_hook else ZERO_ADDRESS,
                "data": data,
            }
            contract = self.orchestrator
            fn = contract.functions.signalIntent(_component_tuple(SIGNAL_INTENT_COMPONENTS, params))
        else:
            contract = self.escrow
            fn = contract.functions.signalIntent(
                request.deposit_id,
                request.amount,
                request.to_address,
                _to_bytes(request.payment_method),
                _to_bytes(request.fiat_currency),
                signature.signature,
            )

        sent = self._submit(f"deposit:{request.deposit_id}:{self.address}", "signalIntent", fn)
        events = contract.events.IntentSignaled().process_receipt(sent.raw_receipt, errors=DISCARD)
        if not events:
            raise ContractError("IntentSignaled event not found in receipt", tx_hash=sent.tx_hash)
        intent_hash = struct_to_dict({"type": "bytes32"}, events[0]["args"]["intentHash"])
        self.logger.info(f"Signaled intent {intent_hash} on deposit {request.deposit_id}")
        return SignalResult(intent_hash=intent_hash, receipt=sent.receipt, signature=signature)

    def fulfill_intent(
        self,
        intent_hash: str,
        payment_proof: Union[bytes, str, ProofBundle],
        verification_data: Union[bytes, str, None] = None,
        post_intent_hook_data: Union[bytes, str, None] = None,
        tracker: Optional[TransactionTracker] = None,
    ) -> TxReceipt:
        """
        Fulfill an intent with its payment proof.

        Args:
            intent_hash: Intent to fulfill
            payment_proof: Encoded proof bytes, or a ProofBundle to encode
            verification_data: Orchestrator-only verification payload
            post_intent_hook_data: Orchestrator-only hook payload
            tracker: Tracker to drive; a new one is taken from the guard when omitted

        Returns:
            Transaction receipt
        """
        proof = payment_proof.encode() if isinstance(payment_proof, ProofBundle) else _to_bytes(payment_proof)
        if not proof:
            raise ValidationError("payment proof is empty", field="paymentProof")

        if self.uses_orchestrator:
            params = {
                "paymentProof": proof,
                "intentHash": _to_bytes(intent_hash),
                "verificationData": _to_bytes(verification_data),
                "postIntentHookData": _to_bytes(post_intent_hook_data),
            }
            fn = self.orchestrator.functions.fulfillIntent(_component_tuple(FULFILL_INTENT_COMPONENTS, params))
        else:
            fn = self.escrow.functions.fulfillIntent(proof, _to_bytes(intent_hash))
        return self._submit(intent_hash, "fulfillIntent", fn, tracker).receipt

    def cancel_intent(self, intent_hash: str, tracker: Optional[TransactionTracker] = None) -> TxReceipt:
        contract = self.orchestrator if self.uses_orchestrator else self.escrow
        fn = contract.functions.cancelIntent(_to_bytes(intent_hash))
        return self._submit(intent_hash, "cancelIntent", fn, tracker).receipt

    def release_funds_to_payer(self, intent_hash: str) -> TxReceipt:
        """Maker-side release of an intent's funds without a proof."""
        fn = self.escrow.functions.releaseFundsToPayer(_to_bytes(intent_hash))
        return self._submit(intent_hash, "releaseFundsToPayer", fn).receipt

    def withdraw_deposit(self, deposit_id: int) -> TxReceipt:
        fn = self.escrow.functions.withdrawDeposit(deposit_id)
        return self._submit(f"deposit:{deposit_id}", "withdrawDeposit", fn).receipt

    def create_deposit(
        self,
        token: str,
        amount: int,
        intent_amount_range: Tuple[int, int],
        processor_names: Sequence[str],
        deposit_data: Sequence[Dict[str, str]],
        conversion_rates: Sequence[Sequence[Dict[str, str]]],
        delegate: Optional[str] = None,
        intent_guardian: Optional[str] = None,
        referrer: Optional[str] = None,
        referrer_fee: int = 0,
    ) -> CreateDepositResult:
        """
        Create a deposit (maker side).

        Approves the escrow for ``amount`` when the current allowance is
        short, registers payee details with the curator API, then submits
        createDeposit. Payment methods are resolved strictly from the catalog.

        Args:
            token: ERC-20 token address
            amount: Token amount in base units
            intent_amount_range: (min, max) intent size
            processor_names: One processor name per payment method
            deposit_data: Payee details per processor, e.g. {"venmoUsername": "alice"}
            conversion_rates: Per processor, a list of {"currency": "USD", "conversionRate": "1.02"}

        Raises:
            ValidationError: If the per-processor lists differ in length or the range is invalid
            UnknownProcessorError: If a processor is not in the catalog
        """
        if not processor_names:
            raise ValidationError("At least one processor is required", field="processorNames")
        if not (len(processor_names) == len(deposit_data) == len(conversion_rates)):
            raise ValidationError(
                "processorNames, depositData and conversionRates must have the same length",
                field="depositData",
            )
        min_amount, max_amount = intent_amount_range
        if min_amount <= 0 or min_amount > max_amount or max_amount > amount:
            raise ValidationError("intentAmountRange must satisfy 0 < min <= max <= amount", field="intentAmountRange")

        catalog = self.catalog
        payment_methods = [_to_bytes(resolve_payment_method_hash_from_catalog(name, catalog)) for name in processor_names]
        currencies = [
            [
                (_to_bytes(resolve_fiat_currency_bytes32(entry["currency"])), conversion_rate_to_onchain(entry["conversionRate"]))
                for entry in rates
            ]
            for rates in conversion_rates
        ]

        token = to_checksum_address(token)
        approve_receipt = self._ensure_allowance(token, amount)

        hashes = [
            self.api.post_deposit_details(name, data)
            for name, data in zip(processor_names, deposit_data)
        ]
        witness_data = encode(["address[]"], [[to_checksum_address(self.network["witnessSigner"])]])
        gating_service = to_checksum_address(self.network["gatingService"])
        payment_method_data = [(gating_service, _to_bytes(h), witness_data) for h in hashes]

        params = (
            token,
            amount,
            (min_amount, max_amount),
            payment_methods,
            payment_method_data,
            currencies,
            to_checksum_address(delegate) if delegate else ZERO_ADDRESS,
            to_checksum_address(intent_guardian) if intent_guardian else ZERO_ADDRESS,
            to_checksum_address(referrer) if referrer else ZERO_ADDRESS,
            referrer_fee,
        )
        sent = self._submit(f"create:{self.address}", "createDeposit", self.escrow.functions.createDeposit(params))
        return CreateDepositResult(receipt=sent.receipt, payee_details_hashes=hashes, approve_receipt=approve_receipt)

    def _ensure_allowance(self, token: str, amount: int) -> Optional[TxReceipt]:
        erc20 = self.w3.eth.contract(address=token, abi=ERC20_ABI)
        allowance = to_int(self._read(erc20.functions.allowance(self.address, self.escrow_address), "allowance"), "allowance")
        if allowance >= amount:
            return None
        self.logger.info(f"Approving escrow for {amount} of {token} (allowance {allowance})")
        return self._submit(f"approve:{token}", "approve", erc20.functions.approve(self.escrow_address, amount)).receipt

    # ---------- Flow ----------

    def new_flow(self, **kwargs):
        """Start an IntentFlow driven by this client."""
        return IntentFlow(self, **kwargs)

    def abort(self) -> None:
        """Abort in-flight curator API and gating requests."""
        self.gating.abort()
        self.api.abort()

    def close(self) -> None:
        self.gating.close()
        self.api.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
