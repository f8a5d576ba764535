"""
Parsers for escrow view payloads.

Raw payloads come from web3 (named structs turned into mappings by
``contracts.struct_to_dict``) or from JSON fixtures. Numeric fields may be
ints, decimal strings or hex strings; they always come out as ``int``.
A missing required field raises ``ParseError`` rather than defaulting to
zero, which would be indistinguishable from a real zero.
"""
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, Field

from .exceptions import ParseError, ParseReason

_MISSING = object()


class IntentAmountRange(BaseModel):
    min: int
    max: int


class DepositFees(BaseModel):
    maker_protocol_fee: int = Field(0, alias="makerProtocolFee")
    reserved_maker_fees: int = Field(0, alias="reservedMakerFees")
    accrued_maker_fees: int = Field(0, alias="accruedMakerFees")
    accrued_referrer_fees: int = Field(0, alias="accruedReferrerFees")

    class Config:
        populate_by_name = True


class VerificationData(BaseModel):
    intent_gating_service: str = Field(..., alias="intentGatingService")
    payee_details: str = Field(..., alias="payeeDetails")
    data: str

    class Config:
        populate_by_name = True


class CurrencyConfig(BaseModel):
    code: str
    min_conversion_rate: int = Field(..., alias="minConversionRate")

    class Config:
        populate_by_name = True


class PaymentMethodConfig(BaseModel):
    payment_method: str = Field(..., alias="paymentMethod")
    verification_data: VerificationData = Field(..., alias="verificationData")
    currencies: List[CurrencyConfig]

    class Config:
        populate_by_name = True


class Deposit(BaseModel):
    """A maker's deposit with its payment methods, as returned by getDeposit."""
    deposit_id: int = Field(..., alias="depositId")
    depositor: str
    delegate: Optional[str] = None
    token: str
    amount: int
    intent_amount_range: IntentAmountRange = Field(..., alias="intentAmountRange")
    accepting_intents: bool = Field(..., alias="acceptingIntents")
    remaining_deposits: int = Field(..., alias="remainingDeposits")
    outstanding_intent_amount: int = Field(..., alias="outstandingIntentAmount")
    fees: DepositFees
    intent_guardian: Optional[str] = Field(None, alias="intentGuardian")
    referrer: Optional[str] = None
    referrer_fee: int = Field(0, alias="referrerFee")
    payment_methods: List[PaymentMethodConfig] = Field(default_factory=list, alias="paymentMethods")
    available_liquidity: int = Field(..., alias="availableLiquidity")
    intent_hashes: List[str] = Field(default_factory=list, alias="intentHashes")

    class Config:
        populate_by_name = True

    @property
    def balances_consistent(self) -> bool:
        return self.remaining_deposits + self.outstanding_intent_amount <= self.amount

    def payment_method(self, payment_method_hash: str) -> Optional[PaymentMethodConfig]:
        target = payment_method_hash.lower()
        for pm in self.payment_methods:
            if pm.payment_method.lower() == target:
                return pm
        return None


class Intent(BaseModel):
    intent_hash: str = Field(..., alias="intentHash")
    owner: str
    to: str
    escrow: str
    deposit_id: int = Field(..., alias="depositId")
    amount: int
    timestamp: int
    payment_method: str = Field(..., alias="paymentMethod")
    fiat_currency: str = Field(..., alias="fiatCurrency")
    conversion_rate: int = Field(..., alias="conversionRate")
    referrer: Optional[str] = None
    referrer_fee: int = Field(0, alias="referrerFee")
    post_intent_hook: Optional[str] = Field(None, alias="postIntentHook")
    data: str = "0x"

    class Config:
        populate_by_name = True


class IntentView(BaseModel):
    intent: Intent
    deposit: Deposit

    @property
    def intent_hash(self) -> str:
        return self.intent.intent_hash


def to_int(value: Any, field: str) -> int:
    """Coerce an int, decimal string, hex string or int-like object to int."""
    if isinstance(value, bool) or value is None:
        raise ParseError(f"Field '{field}' is not numeric: {value!r}", ParseReason.INVALID_NUMBER, field=field)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith(("0x", "-0x")):
                return int(text, 16)
            return int(text, 10)
        except ValueError:
            raise ParseError(f"Field '{field}' is not numeric: {value!r}", ParseReason.INVALID_NUMBER, field=field)
    if isinstance(value, float):
        # floats lose precision above 2**53; only accept exact integrals
        if value.is_integer():
            return int(value)
        raise ParseError(f"Field '{field}' is not an integer: {value!r}", ParseReason.INVALID_NUMBER, field=field)
    if hasattr(value, "__int__"):
        return int(value)
    raise ParseError(f"Unsupported numeric type for '{field}': {type(value).__name__}", ParseReason.INVALID_NUMBER, field=field)


def _require(raw: Any, key: str, path: str) -> Any:
    if not isinstance(raw, Mapping):
        raise ParseError(f"Expected an object at '{path or '<root>'}'", ParseReason.INVALID_SHAPE, field=path)
    value = raw.get(key, _MISSING)
    if value is _MISSING or value is None:
        field = f"{path}.{key}" if path else key
        raise ParseError(f"Missing required field '{field}'", ParseReason.MISSING_FIELD, field=field)
    return value


def _optional(raw: Mapping, key: str, default: Any) -> Any:
    value = raw.get(key)
    return default if value is None else value


def parse_payment_methods(raw: Any, path: str = "paymentMethods") -> List[PaymentMethodConfig]:
    if not isinstance(raw, (list, tuple)):
        raise ParseError(f"Expected a list at '{path}'", ParseReason.INVALID_SHAPE, field=path)
    methods = []
    for i, pm in enumerate(raw):
        here = f"{path}[{i}]"
        verification = _require(pm, "verificationData", here)
        vpath = f"{here}.verificationData"
        currencies = _require(pm, "currencies", here)
        methods.append(PaymentMethodConfig(
            payment_method=_require(pm, "paymentMethod", here),
            verification_data=VerificationData(
                intent_gating_service=_require(verification, "intentGatingService", vpath),
                payee_details=_require(verification, "payeeDetails", vpath),
                data=_require(verification, "data", vpath),
            ),
            currencies=[
                CurrencyConfig(
                    code=_require(c, "code", f"{here}.currencies[{j}]"),
                    min_conversion_rate=to_int(
                        _require(c, "minConversionRate", f"{here}.currencies[{j}]"),
                        f"{here}.currencies[{j}].minConversionRate",
                    ),
                )
                for j, c in enumerate(currencies)
            ],
        ))
    return methods


def parse_deposit_view(raw: Any, path: str = "") -> Deposit:
    """
    Parse a deposit view ``{depositId, deposit, availableLiquidity, paymentMethods, intentHashes}``.

    Raises:
        ParseError: MISSING_FIELD naming the dotted path of the absent field
    """
    def at(key: str) -> str:
        return f"{path}.{key}" if path else key

    deposit = _require(raw, "deposit", path)
    dpath = at("deposit")
    range_raw = _require(deposit, "intentAmountRange", dpath)
    rpath = f"{dpath}.intentAmountRange"

    return Deposit(
        deposit_id=to_int(_require(raw, "depositId", path), at("depositId")),
        depositor=_require(deposit, "depositor", dpath),
        delegate=deposit.get("delegate"),
        token=_require(deposit, "token", dpath),
        amount=to_int(_require(deposit, "amount", dpath), f"{dpath}.amount"),
        intent_amount_range=IntentAmountRange(
            min=to_int(_require(range_raw, "min", rpath), f"{rpath}.min"),
            max=to_int(_require(range_raw, "max", rpath), f"{rpath}.max"),
        ),
        accepting_intents=bool(_require(deposit, "acceptingIntents", dpath)),
        remaining_deposits=to_int(_require(deposit, "remainingDeposits", dpath), f"{dpath}.remainingDeposits"),
        outstanding_intent_amount=to_int(
            _require(deposit, "outstandingIntentAmount", dpath), f"{dpath}.outstandingIntentAmount"
        ),
        # fee fields are absent on pre-fee escrows
        fees=DepositFees(
            maker_protocol_fee=to_int(_optional(deposit, "makerProtocolFee", 0), f"{dpath}.makerProtocolFee"),
            reserved_maker_fees=to_int(_optional(deposit, "reservedMakerFees", 0), f"{dpath}.reservedMakerFees"),
            accrued_maker_fees=to_int(_optional(deposit, "accruedMakerFees", 0), f"{dpath}.accruedMakerFees"),
            accrued_referrer_fees=to_int(_optional(deposit, "accruedReferrerFees", 0), f"{dpath}.accruedReferrerFees"),
        ),
        intent_guardian=deposit.get("intentGuardian"),
        referrer=deposit.get("referrer"),
        referrer_fee=to_int(_optional(deposit, "referrerFee", 0), f"{dpath}.referrerFee"),
        payment_methods=parse_payment_methods(_require(raw, "paymentMethods", path), at("paymentMethods")),
        available_liquidity=to_int(_require(raw, "availableLiquidity", path), at("availableLiquidity")),
        intent_hashes=list(_optional(raw, "intentHashes", [])),
    )


def parse_intent(raw: Any, intent_hash: str, path: str = "intent") -> Intent:
    return Intent(
        intent_hash=intent_hash,
        owner=_require(raw, "owner", path),
        to=_require(raw, "to", path),
        escrow=_require(raw, "escrow", path),
        deposit_id=to_int(_require(raw, "depositId", path), f"{path}.depositId"),
        amount=to_int(_require(raw, "amount", path), f"{path}.amount"),
        timestamp=to_int(_require(raw, "timestamp", path), f"{path}.timestamp"),
        payment_method=_require(raw, "paymentMethod", path),
        fiat_currency=_require(raw, "fiatCurrency", path),
        conversion_rate=to_int(_require(raw, "conversionRate", path), f"{path}.conversionRate"),
        referrer=raw.get("referrer"),
        referrer_fee=to_int(_require(raw, "referrerFee", path), f"{path}.referrerFee"),
        post_intent_hook=raw.get("postIntentHook"),
        data=_require(raw, "data", path),
    )


def parse_intent_view(raw: Any) -> IntentView:
    """Parse ``{intentHash, intent, deposit}`` as returned by getIntent."""
    intent_hash = _require(raw, "intentHash", "")
    return IntentView(
        intent=parse_intent(_require(raw, "intent", ""), intent_hash),
        deposit=parse_deposit_view(_require(raw, "deposit", ""), path="deposit"),
    )
