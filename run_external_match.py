# run_external_match.py

import json
import sys

from dotenv import load_dotenv

from darkpool.core.chain import SettlementSubmitter
from darkpool.core.errors import ExternalMatchClientError
from darkpool.exchanges.api_types import ExternalOrder
from darkpool.exchanges.external_match_client import ExternalMatchClient
from darkpool.exchanges.match_manager import MatchManager
from darkpool.exchanges.options import AssembleQuoteOptions, RequestQuoteOptions


def load_config(path: str):
    with open(path, 'r') as f:
        return json.load(f)


def main():
    load_dotenv()
    path = sys.argv[1] if len(sys.argv) > 1 else 'darkpool/config/order.json'
    config = load_config(path)

    # 1. Клиент релейера (EXTERNAL_MATCH_KEY / EXTERNAL_MATCH_SECRET)
    client = ExternalMatchClient.from_env(is_testnet=config.get("is_testnet", False))

    # 2. Отправка on-chain нужна, только если включена (RPC_URL / PKEY)
    submitter = SettlementSubmitter.from_env() if config.get("submit", False) else None

    order = ExternalOrder(**config["order"])
    quote_options = RequestQuoteOptions(**config.get("quote_options", {}))
    assemble_options = AssembleQuoteOptions(**config.get("assemble_options", {}))

    manager = MatchManager(client, submitter)
    try:
        outcome = manager.execute(order, quote_options, assemble_options, submit=submitter is not None)
    except ExternalMatchClientError as e:
        print(f"Match failed: {e}")
        sys.exit(1)

    if outcome is None:
        print("No match available, try again later")
        return

    bundle = outcome.bundle.match_bundle
    print(f"Send: {bundle.send.amount} of {bundle.send.mint}")
    print(f"Receive: {bundle.receive.amount} of {bundle.receive.mint}")
    print(f"Fees: {bundle.fees.total()}")
    if outcome.tx_hash:
        print(f"Settled: {outcome.tx_hash}")


if __name__ == "__main__":
    main()
