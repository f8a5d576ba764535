"""
Proof codec.

Serializes one or two attestation proofs into the byte blob the escrow's
``fulfillIntent`` expects. The layout is the verifier contract's
``ReclaimProof`` ABI tuple; with two proofs each is a separate top-level
parameter. An optional payment-method tag is packed in front as a uint8.
"""
import json
from typing import Any, Dict, List, Optional, Sequence

from eth_abi import encode
from eth_abi.exceptions import EncodingError as AbiEncodingError
from eth_abi.packed import encode_packed
from eth_utils import keccak, to_checksum_address
from pydantic import BaseModel, Field

from .bytes32 import bytes32_to_bytes, hex_to_bytes
from .exceptions import EncodingError, EncodingReason, InvalidProofCountError, ValidationError

UINT32_MAX = 2 ** 32 - 1
UINT8_MAX = 2 ** 8 - 1

# ((provider, parameters, context), ((identifier, owner, timestampS, epoch), signatures), isAppclipProof)
PROOF_ABI_TYPE = "((string,string,string),((bytes32,address,uint32,uint32),bytes[]),bool)"


class ClaimInfo(BaseModel):
    provider: str
    parameters: str
    context: str = ""


class CompleteClaimData(BaseModel):
    identifier: str
    owner: str
    timestamp_s: int = Field(..., alias="timestampS")
    epoch: int

    class Config:
        populate_by_name = True


class SignedClaim(BaseModel):
    claim: CompleteClaimData
    signatures: List[str]


class ReclaimProof(BaseModel):
    """Attestation proof as the verifier contract's struct sees it."""
    claim_info: ClaimInfo = Field(..., alias="claimInfo")
    signed_claim: SignedClaim = Field(..., alias="signedClaim")
    is_appclip_proof: bool = Field(False, alias="isAppclipProof")

    class Config:
        populate_by_name = True


def parse_reclaim_proxy_proof(proof_object: Dict[str, Any]) -> ReclaimProof:
    """Build a ReclaimProof from the prover's ``{claimData, signatures}`` JSON."""
    try:
        claim = proof_object["claimData"]
        return ReclaimProof(
            claim_info=ClaimInfo(
                provider=claim["provider"],
                parameters=claim["parameters"],
                context=claim.get("context") or "",
            ),
            signed_claim=SignedClaim(
                claim=CompleteClaimData(
                    identifier=claim["identifier"],
                    owner=claim["owner"],
                    timestamp_s=int(claim["timestampS"]),
                    epoch=int(claim["epoch"]),
                ),
                signatures=list(proof_object["signatures"]),
            ),
            is_appclip_proof=False,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Malformed proof object: {e}", field="proof") from e


def _owner_address(owner: str) -> str:
    try:
        return to_checksum_address(owner)
    except (ValueError, TypeError) as e:
        raise EncodingError(f"Claim owner {owner!r} is not an address", EncodingReason.INVALID_ADDRESS, field="owner") from e


def _abi_encode(types: List[str], values: List[Any]) -> bytes:
    try:
        return encode(types, values)
    except (AbiEncodingError, TypeError, ValueError) as e:
        raise EncodingError(f"Proof could not be ABI-encoded: {e}", EncodingReason.ABI_ENCODING, field="proof") from e


def _to_tuple(proof: ReclaimProof) -> tuple:
    claim = proof.signed_claim.claim
    for name, value in (("timestampS", claim.timestamp_s), ("epoch", claim.epoch)):
        if value < 0 or value > UINT32_MAX:
            raise EncodingError(f"{name} {value} exceeds uint32 bounds", EncodingReason.OUT_OF_RANGE, field=name)
    return (
        (proof.claim_info.provider, proof.claim_info.parameters, proof.claim_info.context),
        (
            (
                bytes32_to_bytes(claim.identifier),
                _owner_address(claim.owner),
                claim.timestamp_s,
                claim.epoch,
            ),
            [hex_to_bytes(sig, field="signatures") for sig in proof.signed_claim.signatures],
        ),
        proof.is_appclip_proof,
    )


def encode_proof(proof: ReclaimProof) -> bytes:
    """Single-proof layout: one ReclaimProof tuple."""
    return _abi_encode([PROOF_ABI_TYPE], [_to_tuple(proof)])


def encode_two_proofs(proof1: ReclaimProof, proof2: ReclaimProof) -> bytes:
    """Two-proof layout: two ReclaimProof tuples as top-level parameters."""
    return _abi_encode([PROOF_ABI_TYPE, PROOF_ABI_TYPE], [_to_tuple(proof1), _to_tuple(proof2)])


def encode_proof_and_payment_method(proof_bytes: bytes, payment_method: int) -> bytes:
    """Prefix encoded proof bytes with a packed uint8 payment-method tag."""
    if payment_method < 0 or payment_method > UINT8_MAX:
        raise EncodingError(
            f"paymentMethod {payment_method} exceeds uint8 bounds", EncodingReason.OUT_OF_RANGE, field="paymentMethod"
        )
    try:
        return encode_packed(["uint8", "bytes"], [payment_method, proof_bytes])
    except (AbiEncodingError, TypeError) as e:
        raise EncodingError(f"Cannot pack payment method tag: {e}", EncodingReason.ABI_ENCODING, field="paymentMethod") from e


def assemble_proof_bytes(proofs: Sequence[ReclaimProof], payment_method: Optional[int] = None) -> bytes:
    """
    Encode one or two proofs, optionally tagged with a payment method.

    Raises:
        InvalidProofCountError: For any count other than 1 or 2
        EncodingError: If a proof field cannot be encoded
    """
    count = len(proofs) if proofs is not None else 0
    if count == 1:
        proof_bytes = encode_proof(proofs[0])
    elif count == 2:
        proof_bytes = encode_two_proofs(proofs[0], proofs[1])
    else:
        raise InvalidProofCountError(count)

    if payment_method is not None:
        proof_bytes = encode_proof_and_payment_method(proof_bytes, payment_method)
    return proof_bytes


class ProofBundle(BaseModel):
    """Proofs for a single fulfillment attempt."""
    proofs: List[ReclaimProof]
    payment_method: Optional[int] = None

    def encode(self) -> bytes:
        return assemble_proof_bytes(self.proofs, self.payment_method)

    def encode_hex(self) -> str:
        return "0x" + self.encode().hex()


def canonicalize_json(value: Any) -> str:
    """Canonical JSON text: sorted keys, no insignificant whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def get_identifier_from_claim_info(info: ClaimInfo) -> str:
    """Claim identifier: keccak256 of provider, parameters and canonical context, newline-joined."""
    context = info.context or ""
    if context:
        try:
            context = canonicalize_json(json.loads(context))
        except ValueError:
            raise ValidationError("unable to parse non-empty context. Must be JSON", field="context")
    data = f"{info.provider}\n{info.parameters}\n{context}"
    return "0x" + keccak(data.encode("utf-8")).hex()


def create_sign_data_for_claim(data: CompleteClaimData) -> str:
    """The text a witness signs for a claim."""
    return "\n".join([data.identifier, data.owner.lower(), str(data.timestamp_s), str(data.epoch)])


def intent_hash_to_decimal_string(intent_hash: str) -> str:
    # The browser extension expects the intent hash as a decimal string
    if not isinstance(intent_hash, str) or not intent_hash.startswith("0x"):
        raise ValidationError("intent hash must be a 0x-prefixed hex string", field="intentHash")
    return str(int(intent_hash, 16))
