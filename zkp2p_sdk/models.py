"""
Data models for the ZKP2P SDK.
"""
from decimal import Decimal, InvalidOperation, localcontext
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, Field

from .exceptions import ValidationError

# Conversion rates are fixed-point with 18 decimals on-chain
RATE_DECIMALS = 18
RATE_PRECISION = 100


class TxReceipt(BaseModel):
    """Transaction receipt from the blockchain"""
    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: str = Field(..., alias="blockHash")
    status: int
    gas_used: int = Field(..., alias="gasUsed")
    from_address: str = Field(..., alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    logs: List[Dict[str, Any]]

    class Config:
        populate_by_name = True


class QuoteRequest(BaseModel):
    """Request body for the curator quote endpoints"""
    payment_platforms: List[str] = Field(..., alias="paymentPlatforms")
    fiat_currency: str = Field(..., alias="fiatCurrency")
    user: str
    recipient: str
    destination_chain_id: int = Field(..., alias="destinationChainId")
    destination_token: str = Field(..., alias="destinationToken")
    amount: str
    referrer: Optional[str] = None
    use_multihop: Optional[bool] = Field(None, alias="useMultihop")
    quotes_to_return: Optional[int] = Field(None, alias="quotesToReturn")
    is_exact_fiat: bool = Field(True, alias="isExactFiat")

    class Config:
        populate_by_name = True


class QuoteIntent(BaseModel):
    deposit_id: str = Field(..., alias="depositId")
    processor_name: str = Field(..., alias="processorName")
    amount: str
    to_address: str = Field(..., alias="toAddress")
    payee_details: str = Field(..., alias="payeeDetails")
    processor_intent_data: Optional[Any] = Field(None, alias="processorIntentData")
    fiat_currency_code: str = Field(..., alias="fiatCurrencyCode")
    chain_id: str = Field(..., alias="chainId")

    class Config:
        populate_by_name = True


class Quote(BaseModel):
    fiat_amount: str = Field(..., alias="fiatAmount")
    fiat_amount_formatted: Optional[str] = Field(None, alias="fiatAmountFormatted")
    token_amount: str = Field(..., alias="tokenAmount")
    token_amount_formatted: Optional[str] = Field(None, alias="tokenAmountFormatted")
    payment_method: str = Field(..., alias="paymentMethod")
    payee_address: Optional[str] = Field(None, alias="payeeAddress")
    conversion_rate: str = Field(..., alias="conversionRate")
    intent: QuoteIntent

    class Config:
        populate_by_name = True

    @property
    def onchain_conversion_rate(self) -> int:
        return conversion_rate_to_onchain(self.conversion_rate)


class QuoteFees(BaseModel):
    zkp2p_fee: Optional[str] = Field(None, alias="zkp2pFee")
    zkp2p_fee_formatted: Optional[str] = Field(None, alias="zkp2pFeeFormatted")
    swap_fee: Optional[str] = Field(None, alias="swapFee")
    swap_fee_formatted: Optional[str] = Field(None, alias="swapFeeFormatted")

    class Config:
        populate_by_name = True


class QuoteResult(BaseModel):
    fiat: Optional[Dict[str, Any]] = None
    token: Optional[Dict[str, Any]] = None
    quotes: List[Quote] = Field(default_factory=list)
    fees: Optional[QuoteFees] = None


class QuoteResponse(BaseModel):
    """Envelope returned by /v1/quote/*"""
    success: bool
    message: str = ""
    response_object: QuoteResult = Field(..., alias="responseObject")
    status_code: Optional[int] = Field(None, alias="statusCode")

    class Config:
        populate_by_name = True

    @property
    def quotes(self) -> List[Quote]:
        return self.response_object.quotes


def conversion_rate_to_onchain(rate: str) -> int:
    """
    Convert a decimal conversion rate ("1.02") to its 18-decimal on-chain integer.

    Digits beyond the 18th decimal are truncated. The rate must be finite and
    positive and must not truncate to zero.

    Raises:
        ValidationError: If the rate is not a usable number
    """
    try:
        value = Decimal(str(rate).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid conversion rate: {rate!r}", field="conversionRate")
    if not value.is_finite() or value <= 0:
        raise ValidationError(f"Conversion rate must be a finite positive number: {rate!r}", field="conversionRate")
    with localcontext() as ctx:
        # Exact for any rate that fits in a uint256
        ctx.prec = RATE_PRECISION
        onchain = int(value.scaleb(RATE_DECIMALS))
    if onchain == 0:
        raise ValidationError(f"Conversion rate {rate!r} is below 1e-{RATE_DECIMALS}", field="conversionRate")
    return onchain
