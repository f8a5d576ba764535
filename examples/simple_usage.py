#!/usr/bin/env python3
"""
Simple example of using the ZKP2P SDK: read a deposit and fetch a quote.
"""
import os
import sys

from zkp2p_sdk import QuoteRequest, Zkp2pClient, Zkp2pError


def main():
    """
    Demonstrate basic usage of the Zkp2pClient.

    This example shows how to:
    1. Build a client from ZKP2P_* environment variables
    2. Read a deposit from the escrow
    3. Request quotes from the curator API
    """
    if not os.environ.get("ZKP2P_PRIVATE_KEY"):
        print("ERROR: ZKP2P_PRIVATE_KEY environment variable is required")
        return 1

    deposit_id = int(os.environ.get("DEPOSIT_ID", "1"))

    with Zkp2pClient.from_settings() as client:
        print(f"Account: {client.address}")
        print(f"Escrow: {client.escrow_address}")

        try:
            deposit = client.get_deposit(deposit_id)
            print(f"Deposit {deposit.deposit_id}: {deposit.available_liquidity} available")
            for method in deposit.payment_methods:
                print(f"  {method.payment_method}")
        except Zkp2pError as e:
            print(f"Could not read deposit {deposit_id}: {e}")

        request = QuoteRequest(
            payment_platforms=["venmo", "revolut"],
            fiat_currency="USD",
            user=client.address,
            recipient=client.address,
            destination_chain_id=client.chain_id,
            destination_token=client.network["usdc"],
            amount=os.environ.get("AMOUNT", "25"),
        )
        try:
            response = client.get_quote(request)
        except Zkp2pError as e:
            print(f"Quote failed ({e.code.value}): {e}")
            return 1

        if not response.quotes:
            print("No liquidity for this request")
            return 0
        for quote in response.quotes:
            print(f"{quote.intent.processor_name}: {quote.token_amount} for {quote.fiat_amount} USD")
    return 0


if __name__ == "__main__":
    sys.exit(main())
