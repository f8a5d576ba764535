"""
ABI surface of the escrow, orchestrator and ERC-20 contracts used by the SDK.

Only the functions and events the SDK calls are declared. Struct outputs
come back from web3 as tuples; ``struct_to_dict`` names them using the ABI
so the view parsers can work on mappings.
"""
from typing import Any, Dict, List, Optional


def _p(name: str, type_: str, components: Optional[List[Dict[str, Any]]] = None, indexed: Optional[bool] = None) -> Dict[str, Any]:
    param: Dict[str, Any] = {"name": name, "type": type_, "internalType": type_}
    if components is not None:
        param["components"] = components
    if indexed is not None:
        param["indexed"] = indexed
    return param


def _fn(name: str, inputs, outputs=(), mutability: str = "nonpayable") -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": list(inputs),
        "outputs": list(outputs),
        "stateMutability": mutability,
    }


RANGE_COMPONENTS = [_p("min", "uint256"), _p("max", "uint256")]

CURRENCY_COMPONENTS = [_p("code", "bytes32"), _p("minConversionRate", "uint256")]

VERIFICATION_DATA_COMPONENTS = [
    _p("intentGatingService", "address"),
    _p("payeeDetails", "bytes32"),
    _p("data", "bytes"),
]

DEPOSIT_COMPONENTS = [
    _p("depositor", "address"),
    _p("delegate", "address"),
    _p("token", "address"),
    _p("amount", "uint256"),
    _p("intentAmountRange", "tuple", RANGE_COMPONENTS),
    _p("acceptingIntents", "bool"),
    _p("remainingDeposits", "uint256"),
    _p("outstandingIntentAmount", "uint256"),
    _p("makerProtocolFee", "uint256"),
    _p("reservedMakerFees", "uint256"),
    _p("accruedMakerFees", "uint256"),
    _p("accruedReferrerFees", "uint256"),
    _p("intentGuardian", "address"),
    _p("referrer", "address"),
    _p("referrerFee", "uint256"),
]

PAYMENT_METHOD_DATA_COMPONENTS = [
    _p("paymentMethod", "bytes32"),
    _p("verificationData", "tuple", VERIFICATION_DATA_COMPONENTS),
    _p("currencies", "tuple[]", CURRENCY_COMPONENTS),
]

DEPOSIT_VIEW_COMPONENTS = [
    _p("depositId", "uint256"),
    _p("deposit", "tuple", DEPOSIT_COMPONENTS),
    _p("availableLiquidity", "uint256"),
    _p("paymentMethods", "tuple[]", PAYMENT_METHOD_DATA_COMPONENTS),
    _p("intentHashes", "bytes32[]"),
]

INTENT_COMPONENTS = [
    _p("owner", "address"),
    _p("to", "address"),
    _p("escrow", "address"),
    _p("depositId", "uint256"),
    _p("amount", "uint256"),
    _p("timestamp", "uint256"),
    _p("paymentMethod", "bytes32"),
    _p("fiatCurrency", "bytes32"),
    _p("conversionRate", "uint256"),
    _p("referrer", "address"),
    _p("referrerFee", "uint256"),
    _p("postIntentHook", "address"),
    _p("data", "bytes"),
]

INTENT_VIEW_COMPONENTS = [
    _p("intentHash", "bytes32"),
    _p("intent", "tuple", INTENT_COMPONENTS),
    _p("deposit", "tuple", DEPOSIT_VIEW_COMPONENTS),
]

CREATE_DEPOSIT_COMPONENTS = [
    _p("token", "address"),
    _p("amount", "uint256"),
    _p("intentAmountRange", "tuple", RANGE_COMPONENTS),
    _p("paymentMethods", "bytes32[]"),
    _p("paymentMethodData", "tuple[]", VERIFICATION_DATA_COMPONENTS),
    _p("currencies", "tuple[][]", CURRENCY_COMPONENTS),
    _p("delegate", "address"),
    _p("intentGuardian", "address"),
    _p("referrer", "address"),
    _p("referrerFee", "uint256"),
]

SIGNAL_INTENT_COMPONENTS = [
    _p("escrow", "address"),
    _p("depositId", "uint256"),
    _p("amount", "uint256"),
    _p("to", "address"),
    _p("paymentMethod", "bytes32"),
    _p("fiatCurrency", "bytes32"),
    _p("conversionRate", "uint256"),
    _p("referrer", "address"),
    _p("referrerFee", "uint256"),
    _p("gatingServiceSignature", "bytes"),
    _p("signatureExpiration", "uint256"),
    _p("postIntentHook", "address"),
    _p("data", "bytes"),
]

FULFILL_INTENT_COMPONENTS = [
    _p("paymentProof", "bytes"),
    _p("intentHash", "bytes32"),
    _p("verificationData", "bytes"),
    _p("postIntentHookData", "bytes"),
]

INTENT_SIGNALED_EVENT = {
    "type": "event",
    "name": "IntentSignaled",
    "anonymous": False,
    "inputs": [
        _p("intentHash", "bytes32", indexed=True),
        _p("escrow", "address", indexed=True),
        _p("depositId", "uint256", indexed=True),
        _p("paymentMethod", "bytes32", indexed=False),
        _p("owner", "address", indexed=False),
        _p("to", "address", indexed=False),
        _p("amount", "uint256", indexed=False),
        _p("fiatCurrency", "bytes32", indexed=False),
        _p("conversionRate", "uint256", indexed=False),
        _p("timestamp", "uint256", indexed=False),
    ],
}

ESCROW_ABI = [
    _fn("getDeposit", [_p("_depositId", "uint256")], [_p("", "tuple", DEPOSIT_VIEW_COMPONENTS)], "view"),
    _fn("getIntent", [_p("_intentHash", "bytes32")], [_p("", "tuple", INTENT_VIEW_COMPONENTS)], "view"),
    _fn("getAccountIntent", [_p("_account", "address")], [_p("", "bytes32")], "view"),
    _fn("depositCounter", [], [_p("", "uint256")], "view"),
    _fn("createDeposit", [_p("_params", "tuple", CREATE_DEPOSIT_COMPONENTS)]),
    _fn("signalIntent", [
        _p("_depositId", "uint256"),
        _p("_amount", "uint256"),
        _p("_to", "address"),
        _p("_paymentMethod", "bytes32"),
        _p("_fiatCurrency", "bytes32"),
        _p("_gatingServiceSignature", "bytes"),
    ]),
    _fn("fulfillIntent", [_p("_paymentProof", "bytes"), _p("_intentHash", "bytes32")]),
    _fn("cancelIntent", [_p("_intentHash", "bytes32")]),
    _fn("releaseFundsToPayer", [_p("_intentHash", "bytes32")]),
    _fn("withdrawDeposit", [_p("_depositId", "uint256")]),
    INTENT_SIGNALED_EVENT,
]

ORCHESTRATOR_ABI = [
    _fn("signalIntent", [_p("_params", "tuple", SIGNAL_INTENT_COMPONENTS)]),
    _fn("fulfillIntent", [_p("_params", "tuple", FULFILL_INTENT_COMPONENTS)]),
    _fn("cancelIntent", [_p("_intentHash", "bytes32")]),
    INTENT_SIGNALED_EVENT,
]

ERC20_ABI = [
    _fn("allowance", [_p("owner", "address"), _p("spender", "address")], [_p("", "uint256")], "view"),
    _fn("approve", [_p("spender", "address"), _p("amount", "uint256")], [_p("", "bool")]),
    _fn("decimals", [], [_p("", "uint8")], "view"),
]


def _normalize(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


def struct_to_dict(param: Dict[str, Any], value: Any) -> Any:
    """
    Name a decoded ABI value using its parameter definition.

    Tuples become dicts keyed by component name, arrays of tuples become
    lists of dicts, and bytes become 0x-prefixed hex strings.
    """
    type_ = param["type"]
    if type_.endswith("]"):
        inner = dict(param, type=type_[: type_.rindex("[")])
        return [struct_to_dict(inner, item) for item in value]
    if type_ == "tuple":
        if isinstance(value, dict):
            # web3 may already return named structs
            value = [value[c["name"]] for c in param["components"]]
        return {
            component["name"]: struct_to_dict(component, item)
            for component, item in zip(param["components"], value)
        }
    return _normalize(value)


def function_output(abi: List[Dict[str, Any]], name: str) -> Dict[str, Any]:
    for entry in abi:
        if entry.get("type") == "function" and entry["name"] == name:
            return entry["outputs"][0]
    raise KeyError(f"Function {name} not in ABI")
