# tests/conftest.py

import base64
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest

from darkpool.exchanges.api_types import (
    ApiExternalQuote,
    AtomicMatchApiBundle,
    ExternalMatchResponse,
    SignedExternalQuote,
)

# Testnet wETH / USDC
WETH = "0xc3414a7ef14aaaa9c4522dfc00a4e66e74e9c25a"
USDC = "0xdf8d259c04020562717557f2b5a3cf28e92707d1"
SETTLEMENT_CONTRACT = "0x9af8ad4c4c6fde7b2ae9a7a46c6a2ee5b88ae5cf"

API_KEY = "test-api-key"
SECRET_BYTES = b"0123456789abcdef0123456789abcdef"
API_SECRET = base64.b64encode(SECRET_BYTES).decode()


def _legs(side, base_mint, quote_mint, send_amount, receive_amount):
    if side == "Sell":
        send = {"mint": base_mint, "amount": send_amount}
        receive = {"mint": quote_mint, "amount": receive_amount}
    else:
        send = {"mint": quote_mint, "amount": send_amount}
        receive = {"mint": base_mint, "amount": receive_amount}
    return send, receive


def quote_dict(
    side="Sell",
    send_amount=1,
    receive_amount=2500,
    relayer_fee=2,
    protocol_fee=1,
    price="2503",
    base_mint=WETH,
    quote_mint=USDC,
    base_amount=1,
    quote_amount=0,
    min_fill_size=0,
):
    send, receive = _legs(side, base_mint, quote_mint, send_amount, receive_amount)
    return {
        "order": {
            "quote_mint": quote_mint,
            "base_mint": base_mint,
            "side": side,
            "base_amount": base_amount,
            "quote_amount": quote_amount,
            "min_fill_size": min_fill_size,
        },
        "match_result": {
            "quote_mint": quote_mint,
            "base_mint": base_mint,
            "quote_amount": 2503,
            "base_amount": 1,
            "direction": side,
        },
        "fees": {"relayer_fee": relayer_fee, "protocol_fee": protocol_fee},
        "send": send,
        "receive": receive,
        "price": {"price": price, "timestamp": 1700000000000},
        "timestamp": 1700000000000,
    }


def bundle_dict(
    side="Sell",
    send_amount=1,
    receive_amount=2500,
    relayer_fee=2,
    protocol_fee=1,
    matched_base=1,
    matched_quote=2503,
    base_mint=WETH,
    quote_mint=USDC,
):
    send, receive = _legs(side, base_mint, quote_mint, send_amount, receive_amount)
    return {
        "match_result": {
            "quote_mint": quote_mint,
            "base_mint": base_mint,
            "quote_amount": matched_quote,
            "base_amount": matched_base,
            "direction": side,
        },
        "fees": {"relayer_fee": relayer_fee, "protocol_fee": protocol_fee},
        "receive": receive,
        "send": send,
        "settlement_tx": {
            "type": "0x2",
            "to": SETTLEMENT_CONTRACT,
            "input": "0xdeadbeef",
            "value": "0x0",
        },
    }


@pytest.fixture
def make_quote():
    def _make(**kwargs):
        return ApiExternalQuote.model_validate(quote_dict(**kwargs))
    return _make


@pytest.fixture
def make_signed_quote():
    def _make(**kwargs):
        return SignedExternalQuote.model_validate({"quote": quote_dict(**kwargs), "signature": "0xsig"})
    return _make


@pytest.fixture
def make_bundle():
    def _make(**kwargs):
        return AtomicMatchApiBundle.model_validate(bundle_dict(**kwargs))
    return _make


@pytest.fixture
def make_match_response():
    def _make(**kwargs):
        return ExternalMatchResponse.model_validate({"match_bundle": bundle_dict(**kwargs), "gas_sponsored": False})
    return _make
