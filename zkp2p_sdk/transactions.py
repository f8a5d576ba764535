"""
Signing and submission of contract writes.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import requests
from eth_account.signers.base import BaseAccount
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .exceptions import ContractError, NetworkError, NetworkReason
from .gas import BaseFeeCache, calculate_gas_with_buffer, get_dynamic_gas_pricing
from .models import TxReceipt
from .tracker import TransactionTracker

logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMIT = 500000
DEFAULT_RECEIPT_TIMEOUT = 120


class Signer(Protocol):
    """Protocol for custom signers"""
    address: str

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> Any:
        """Sign transaction and return signed tx object"""
        ...


@dataclass
class SentTransaction:
    receipt: TxReceipt
    raw_receipt: Any

    @property
    def tx_hash(self) -> str:
        return self.receipt.tx_hash


def _to_plain(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if hasattr(value, "items"):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(item) for item in value]
    return value


def convert_receipt(web3_receipt: Any) -> TxReceipt:
    """
    Convert Web3 receipt to our TxReceipt model

    Args:
        web3_receipt: The Web3 transaction receipt

    Returns:
        Our TxReceipt model
    """
    return TxReceipt.model_validate(_to_plain(dict(web3_receipt)))


def revert_reason(error: BaseException) -> str:
    message = getattr(error, "message", None)
    return message if isinstance(message, str) and message else str(error)


def rpc_error_message(error: BaseException) -> str:
    """Message of a JSON-RPC error; web3 raises these as ValueError({"code": ..., "message": ...})."""
    if error.args and isinstance(error.args[0], dict):
        return str(error.args[0].get("message") or error.args[0])
    return str(error)


class TransactionSender:
    """
    Builds, signs and submits contract function calls.

    Every submission is driven through a ``TransactionTracker`` that the
    caller obtained from a ``SubmissionGuard``: signing is marked done once
    the raw transaction is accepted by the node, mining once the receipt
    is in.
    """

    def __init__(
        self,
        w3,
        account: Optional[BaseAccount] = None,
        signer: Optional[Signer] = None,
        gas_cache: Optional[BaseFeeCache] = None,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        poll_latency: float = 0.1,
    ):
        if not account and not signer:
            raise ValueError("Either account or signer must be provided")
        self.w3 = w3
        self.account = account
        self.signer = signer
        self.gas_cache = gas_cache if gas_cache is not None else BaseFeeCache()
        self.receipt_timeout = receipt_timeout
        self.poll_latency = poll_latency

    @property
    def address(self) -> str:
        return self.account.address if self.account else self.signer.address

    def send(
        self,
        contract_fn,
        tracker: TransactionTracker,
        value: int = 0,
        gas: Optional[int] = None,
    ) -> SentTransaction:
        """
        Submit a contract function call and wait for it to be mined.

        Args:
            contract_fn: Bound web3 contract function (``contract.functions.x(...)``)
            tracker: Tracker already in the signing step
            value: Wei to attach
            gas: Gas limit override; estimated and buffered when None

        Returns:
            The converted receipt and the raw web3 receipt (for event decoding)

        Raises:
            ContractError: On a simulated revert, a signing failure or a reverted receipt
            NetworkError: If the node is unreachable or the receipt does not arrive in time
        """
        try:
            return self._send(contract_fn, tracker, value, gas)
        except Exception as e:
            if not tracker.is_terminal:
                tracker.mark_failed(e)
            raise

    def _send(self, contract_fn, tracker: TransactionTracker, value: int, gas: Optional[int]) -> SentTransaction:
        action = tracker.action
        from_address = self.address
        call_params = {"from": from_address, "value": value}

        # 1. Simulate so reverts surface before anything is signed
        try:
            contract_fn.call(call_params)
        except ContractLogicError as e:
            reason = revert_reason(e)
            logger.error(f"{action} simulation reverted: {reason}")
            raise ContractError(f"{action} would revert: {reason}", revert_reason=reason) from e
        except requests.RequestException as e:
            raise NetworkError(f"RPC unreachable while simulating {action}: {e}", NetworkReason.CONNECTION) from e
        except (Web3Exception, ValueError) as e:
            message = rpc_error_message(e)
            logger.error(f"{action} simulation failed: {message}")
            raise ContractError(f"{action} simulation failed: {message}", details={"rpc_error": message}) from e

        # 2. Gas pricing from the latest base fee
        pricing = get_dynamic_gas_pricing(self.w3, self.gas_cache)

        # 3. Gas estimation if needed
        if gas is None:
            try:
                estimated = contract_fn.estimate_gas(call_params)
                gas = calculate_gas_with_buffer(estimated, pricing.is_congested)
                logger.debug(f"Estimated gas for {action}: {estimated}, with buffer: {gas}")
            except ContractLogicError as e:
                reason = revert_reason(e)
                raise ContractError(f"{action} gas estimation reverted: {reason}", revert_reason=reason) from e
            except (Web3Exception, ValueError) as e:
                gas = DEFAULT_GAS_LIMIT
                logger.warning(f"Gas estimation failed, using default: {gas}. Error: {e}")

        # 4. Build transaction
        try:
            nonce = self.w3.eth.get_transaction_count(from_address, "pending")
            tx_params = {
                "from": from_address,
                "nonce": nonce,
                "gas": gas,
                "value": value,
                "chainId": self.w3.eth.chain_id,
            }
            tx_params.update(pricing.as_tx_params())
            tx = contract_fn.build_transaction(tx_params)
        except requests.RequestException as e:
            raise NetworkError(f"RPC unreachable while building {action}: {e}", NetworkReason.CONNECTION) from e
        except (Web3Exception, ValueError) as e:
            raise ContractError(f"Failed to build {action} transaction: {rpc_error_message(e)}") from e

        # 5. Sign transaction
        try:
            if self.account:
                signed_tx = self.account.sign_transaction(tx)
            else:
                signed_tx = self.signer.sign_transaction(tx)
        except Exception as e:
            logger.error(f"Transaction signing failed: {e}")
            raise ContractError(f"Failed to sign {action} transaction: {e}") from e

        # 6. Send transaction
        raw = getattr(signed_tx, "raw_transaction", None) or getattr(signed_tx, "rawTransaction")
        try:
            tx_hash = self.w3.eth.send_raw_transaction(raw)
        except requests.RequestException as e:
            raise NetworkError(f"RPC unreachable while sending {action}: {e}", NetworkReason.CONNECTION) from e
        except (Web3Exception, ValueError) as e:
            logger.error(f"Failed to send transaction: {e}")
            raise ContractError(f"Failed to send {action} transaction: {rpc_error_message(e)}") from e

        tx_hash_hex = _to_plain(tx_hash) if isinstance(tx_hash, (bytes, bytearray)) else str(tx_hash)
        tracker.mark_signed(tx_hash_hex)
        logger.info(f"{action} transaction sent: {tx_hash_hex}")

        # 7. Wait for receipt
        try:
            raw_receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.receipt_timeout,
                poll_latency=self.poll_latency,
            )
        except TimeExhausted as e:
            raise NetworkError(
                f"{action} transaction {tx_hash_hex} not mined within {self.receipt_timeout}s",
                NetworkReason.TIMEOUT,
                {"tx_hash": tx_hash_hex},
            ) from e
        except requests.RequestException as e:
            raise NetworkError(f"RPC unreachable while waiting for {action}: {e}", NetworkReason.CONNECTION, {"tx_hash": tx_hash_hex}) from e
        except (Web3Exception, ValueError) as e:
            # The transaction is already broadcast; only the receipt lookup failed
            raise NetworkError(
                f"Receipt lookup for {action} transaction {tx_hash_hex} failed: {rpc_error_message(e)}",
                NetworkReason.CONNECTION,
                {"tx_hash": tx_hash_hex},
            ) from e

        receipt = convert_receipt(raw_receipt)
        if receipt.status != 1:
            logger.error(f"{action} transaction {receipt.tx_hash} reverted in block {receipt.block_number}")
            raise ContractError(f"{action} transaction reverted", tx_hash=receipt.tx_hash, details={"block_number": receipt.block_number})

        tracker.mark_mined(receipt.tx_hash)
        logger.info(f"{action} transaction mined in block {receipt.block_number} (gas used {receipt.gas_used})")
        return SentTransaction(receipt=receipt, raw_receipt=raw_receipt)
