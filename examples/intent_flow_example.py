#!/usr/bin/env python3
"""
Walk one intent from quote to release with IntentFlow.

The proofs are read from a JSON file produced by a Reclaim attestor after
the fiat payment has been made (a single proof object or a list of two).
"""
import json
import logging
import os
import sys

from zkp2p_sdk import (
    FailureReason,
    IntentState,
    PaymentMethodCatalog,
    QuoteRequest,
    Zkp2pClient,
)

logging.basicConfig(level=logging.INFO)


def load_proofs(flow):
    """Block until the payer has paid and saved the proof file."""
    quote = flow.quote
    print(f"Intent {flow.intent_hash} signaled.")
    print(f"Pay {quote.fiat_amount} via {quote.intent.processor_name} to {quote.intent.payee_details}")
    path = input("Path to the proof JSON once paid: ").strip()
    with open(path) as f:
        proofs = json.load(f)
    return proofs if isinstance(proofs, list) else [proofs]


def main():
    catalog_path = os.environ.get("CATALOG_PATH")
    catalog = None
    if catalog_path:
        with open(catalog_path) as f:
            catalog = PaymentMethodCatalog(json.load(f))

    with Zkp2pClient.from_settings(catalog=catalog) as client:
        request = QuoteRequest(
            payment_platforms=[os.environ.get("PLATFORM", "venmo")],
            fiat_currency=os.environ.get("FIAT", "USD"),
            user=client.address,
            recipient=client.address,
            destination_chain_id=client.chain_id,
            destination_token=client.network["usdc"],
            amount=os.environ.get("AMOUNT", "10"),
        )

        flow = client.new_flow(max_attempts=3, backoff_seconds=2.0)
        state = flow.run(request, load_proofs)

        while state == IntentState.FAILED and flow.failure in (FailureReason.RETRYABLE, FailureReason.CONTRACT):
            print(f"Failed at {flow.resume_state.value}: {flow.error}")
            if input("Retry? [y/N] ").strip().lower() != "y":
                break
            flow.retry()
            state = flow.state

        if state == IntentState.FAILED and flow.intent_hash:
            print("Cancelling the intent to release the deposit's liquidity")
            flow.cancel()

        print("States:", " -> ".join(s.value for s in flow.history))
        return 0 if flow.state == IntentState.FULFILLED else 1


if __name__ == "__main__":
    sys.exit(main())
