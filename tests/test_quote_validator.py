# tests/test_quote_validator.py

from decimal import Decimal

import pytest

from conftest import USDC, WETH, bundle_dict, quote_dict
from darkpool.core.errors import ValidationCheck, ValidationError
from darkpool.exchanges.api_types import ApiExternalQuote, AtomicMatchApiBundle, ExternalOrder, OrderSide
from darkpool.exchanges.quote_validator import check_order_update, validate_bundle, validate_quote


def sell_weth(**kwargs):
    params = dict(base_mint=WETH, quote_mint=USDC, side=OrderSide.SELL, base_amount=1)
    params.update(kwargs)
    return ExternalOrder(**params)


def buy_weth(**kwargs):
    params = dict(base_mint=WETH, quote_mint=USDC, side=OrderSide.BUY, base_amount=1000)
    params.update(kwargs)
    return ExternalOrder(**params)


def assert_rejected(check, fn, *args):
    with pytest.raises(ValidationError) as exc_info:
        fn(*args)
    assert exc_info.value.check == check


# --- Сценарий: продаём 1 WETH за USDC ---

def test_sell_weth_for_usdc_passes(make_quote):
    quote = make_quote(send_amount=1, receive_amount=2500, relayer_fee=2, protocol_fee=1)
    assert validate_quote(sell_weth(), quote) is None


def test_zero_receive_amount_fails(make_quote):
    quote = make_quote(send_amount=1, receive_amount=0, relayer_fee=2, protocol_fee=1)
    assert_rejected(ValidationCheck.ZERO_AMOUNT, validate_quote, sell_weth(), quote)


def test_zero_send_amount_fails(make_quote):
    assert_rejected(ValidationCheck.ZERO_AMOUNT, validate_quote, sell_weth(), make_quote(send_amount=0))


# --- Пара и сторона ---

def test_side_mismatch_rejected_even_if_everything_else_matches(make_quote):
    quote = make_quote(side="Buy")
    assert_rejected(ValidationCheck.SIDE_MISMATCH, validate_quote, sell_weth(), quote)


def test_side_checked_before_amounts(make_quote):
    quote = make_quote(side="Buy", receive_amount=0)
    assert_rejected(ValidationCheck.SIDE_MISMATCH, validate_quote, sell_weth(), quote)


def test_mint_mismatch_rejected(make_quote):
    other = "0x" + "11" * 20
    assert_rejected(ValidationCheck.MINT_MISMATCH, validate_quote, sell_weth(), make_quote(base_mint=other))
    assert_rejected(ValidationCheck.MINT_MISMATCH, validate_quote, sell_weth(), make_quote(quote_mint=other))


def test_swapped_pair_rejected(make_quote):
    quote = make_quote(base_mint=USDC, quote_mint=WETH)
    assert_rejected(ValidationCheck.MINT_MISMATCH, validate_quote, sell_weth(), quote)


def test_mints_compared_case_insensitively(make_quote):
    quote = make_quote(base_mint=WETH.upper().replace("0X", "0x"), quote_mint=USDC.upper().replace("0X", "0x"))
    validate_quote(sell_weth(), quote)


# --- Ноги расчёта: какие токены реально уходят и приходят ---

FOREIGN = "0x" + "33" * 20


def quote_with_legs(send_mint, receive_mint, **kwargs):
    raw = quote_dict(**kwargs)
    raw["send"]["mint"] = send_mint
    raw["receive"]["mint"] = receive_mint
    return ApiExternalQuote.model_validate(raw)


def test_swapped_transfer_mints_rejected():
    # Продавец WETH не должен отдавать USDC
    quote = quote_with_legs(USDC, WETH)
    assert_rejected(ValidationCheck.MINT_MISMATCH, validate_quote, sell_weth(), quote)


def test_foreign_receive_mint_rejected():
    assert_rejected(ValidationCheck.MINT_MISMATCH, validate_quote, sell_weth(), quote_with_legs(WETH, FOREIGN))
    assert_rejected(ValidationCheck.MINT_MISMATCH, validate_quote, sell_weth(), quote_with_legs(FOREIGN, USDC))


def test_buy_legs_are_reversed():
    order = buy_weth()
    kwargs = dict(side="Buy", send_amount=2500, receive_amount=997, price="2.5", base_amount=1000)
    validate_quote(order, quote_with_legs(USDC, WETH, **kwargs))
    assert_rejected(ValidationCheck.MINT_MISMATCH, validate_quote, order, quote_with_legs(WETH, USDC, **kwargs))


def test_transfer_mints_compared_case_insensitively():
    validate_quote(sell_weth(), quote_with_legs(WETH.upper().replace("0X", "0x"), USDC.upper().replace("0X", "0x")))


def test_match_result_pair_and_direction_checked():
    raw = quote_dict()
    raw["match_result"]["base_mint"] = FOREIGN
    assert_rejected(ValidationCheck.MINT_MISMATCH, validate_quote, sell_weth(), ApiExternalQuote.model_validate(raw))

    raw = quote_dict()
    raw["match_result"]["direction"] = "Buy"
    assert_rejected(ValidationCheck.SIDE_MISMATCH, validate_quote, sell_weth(), ApiExternalQuote.model_validate(raw))


# --- Комиссии ---

def test_negative_fee_rejected(make_quote):
    assert_rejected(ValidationCheck.NEGATIVE_FEE, validate_quote, sell_weth(), make_quote(relayer_fee=-1))
    assert_rejected(ValidationCheck.NEGATIVE_FEE, validate_quote, sell_weth(), make_quote(protocol_fee=-1))


def test_fees_exceeding_gross_proceeds_rejected(make_quote):
    # 1 WETH по 2503 = 2503 USDC валовой выручки
    quote = make_quote(relayer_fee=2000, protocol_fee=504)
    assert_rejected(ValidationCheck.FEES_EXCEED_PROCEEDS, validate_quote, sell_weth(), quote)


def test_fees_equal_to_gross_proceeds_pass(make_quote):
    validate_quote(sell_weth(), make_quote(relayer_fee=2000, protocol_fee=503))


def test_buy_side_proceeds_are_send_over_price(make_quote):
    # 2500 USDC / 2.5 = 1000 WETH единиц
    quote = make_quote(side="Buy", send_amount=2500, receive_amount=997, price="2.5", base_amount=1000)
    validate_quote(buy_weth(), quote)

    too_expensive = make_quote(side="Buy", send_amount=2500, receive_amount=1, relayer_fee=1000, protocol_fee=1,
                               price="2.5", base_amount=1000)
    assert_rejected(ValidationCheck.FEES_EXCEED_PROCEEDS, validate_quote, buy_weth(), too_expensive)


@pytest.mark.parametrize("price", ["0", "-1", "abc", "NaN"])
def test_invalid_price_rejected(make_quote, price):
    assert_rejected(ValidationCheck.INVALID_PRICE, validate_quote, sell_weth(), make_quote(price=price))


# --- Минимальный размер исполнения ---

def test_min_fill_size_boundary(make_quote):
    order = sell_weth(base_amount=1000, min_fill_size=1000)
    exact = make_quote(send_amount=1000, receive_amount=2497, price="2.5", base_amount=1000, min_fill_size=1000)
    validate_quote(order, exact)

    one_below = make_quote(send_amount=999, receive_amount=2494, price="2.5", base_amount=1000, min_fill_size=1000)
    assert_rejected(ValidationCheck.MIN_FILL_SIZE, validate_quote, order, one_below)


def test_min_fill_size_for_buy_uses_received_base(make_quote):
    order = buy_weth(min_fill_size=997)
    validate_quote(order, make_quote(side="Buy", send_amount=2500, receive_amount=997, price="2.5", base_amount=1000))
    assert_rejected(
        ValidationCheck.MIN_FILL_SIZE,
        validate_quote,
        order,
        make_quote(side="Buy", send_amount=2500, receive_amount=996, price="2.5", base_amount=1000),
    )


def test_min_fill_size_for_quote_denominated_sell_uses_received_quote(make_quote):
    order = sell_weth(base_amount=0, quote_amount=2500, min_fill_size=2500)
    quote = make_quote(send_amount=1, receive_amount=2499, base_amount=0, quote_amount=2500)
    assert_rejected(ValidationCheck.MIN_FILL_SIZE, validate_quote, order, quote)


# --- Худшая цена ---

def test_sell_worst_case_price(make_quote):
    validate_quote(sell_weth(worst_case_price=Decimal("2503")), make_quote())
    assert_rejected(ValidationCheck.PRICE_BOUND, validate_quote, sell_weth(worst_case_price=Decimal("2600")), make_quote())


def test_buy_worst_case_price(make_quote):
    quote = make_quote(side="Buy", send_amount=2500, receive_amount=997, price="2.5", base_amount=1000)
    validate_quote(buy_weth(worst_case_price=Decimal("2.5")), quote)
    assert_rejected(ValidationCheck.PRICE_BOUND, validate_quote, buy_weth(worst_case_price=Decimal("2.4")), quote)


# --- Бандлы ---

def test_bundle_passes(make_bundle):
    validate_bundle(sell_weth(), make_bundle())


def test_bundle_direction_mismatch(make_bundle):
    assert_rejected(ValidationCheck.SIDE_MISMATCH, validate_bundle, sell_weth(), make_bundle(side="Buy"))


def test_bundle_zero_receive(make_bundle):
    assert_rejected(ValidationCheck.ZERO_AMOUNT, validate_bundle, sell_weth(), make_bundle(receive_amount=0))


def test_bundle_without_matched_amounts_has_no_price(make_bundle):
    assert_rejected(ValidationCheck.INVALID_PRICE, validate_bundle, sell_weth(), make_bundle(matched_base=0))


def test_bundle_fees_above_implied_proceeds(make_bundle):
    bundle = make_bundle(relayer_fee=2503, protocol_fee=1)
    assert_rejected(ValidationCheck.FEES_EXCEED_PROCEEDS, validate_bundle, sell_weth(), bundle)


# --- Обновление ордера при сборке ---

def test_order_update_may_change_amounts():
    check_order_update(sell_weth(), sell_weth(base_amount=5, min_fill_size=2))


def test_order_update_may_not_change_side_or_pair():
    assert_rejected(ValidationCheck.SIDE_MISMATCH, check_order_update, sell_weth(), buy_weth())
    other = "0x" + "22" * 20
    assert_rejected(ValidationCheck.MINT_MISMATCH, check_order_update, sell_weth(), sell_weth(quote_mint=other))


def test_bundle_transfer_mints_checked():
    raw = bundle_dict()
    raw["receive"]["mint"] = FOREIGN
    assert_rejected(ValidationCheck.MINT_MISMATCH, validate_bundle, sell_weth(), AtomicMatchApiBundle.model_validate(raw))

    raw = bundle_dict()
    raw["send"]["mint"], raw["receive"]["mint"] = USDC, WETH
    assert_rejected(ValidationCheck.MINT_MISMATCH, validate_bundle, sell_weth(), AtomicMatchApiBundle.model_validate(raw))


# --- Точный выход ---

def test_min_fill_size_for_exact_quote_output_sell_uses_received_quote(make_quote):
    order = sell_weth(base_amount=0, exact_quote_output=2500, min_fill_size=2500)
    validate_quote(order, make_quote(send_amount=1, receive_amount=2500, base_amount=0))
    assert_rejected(
        ValidationCheck.MIN_FILL_SIZE,
        validate_quote,
        order,
        make_quote(send_amount=1, receive_amount=2499, base_amount=0),
    )
