# darkpool/exchanges/quote_validator.py

"""
Проверка котировок и бандлов релейера перед сборкой и отправкой on-chain.

Проверки идут строго по порядку, первая неудачная бросает ValidationError
с тегом ValidationCheck:
  1. пара (base/quote mint, без учёта регистра) в ордере и в match_result
  2. сторона, затем mint-ы send/receive: продавец отдаёт base и получает quote,
     покупатель наоборот
  3. receive.amount > 0 и send.amount > 0
  4. комиссии неотрицательны
  5. комиссии не больше валовой выручки (price * amount)
  6. минимальный размер исполнения, если задан
  7. худшая допустимая цена, если задана

Проверка рекомендательная: защищает от кривого или враждебного ответа,
релейер и контракт её не гарантируют.
"""

import logging
from decimal import Decimal, InvalidOperation, localcontext
from typing import Optional

from darkpool.core.errors import ValidationCheck, ValidationError
from darkpool.exchanges.api_types import (
    ApiExternalAssetTransfer,
    ApiExternalQuote,
    AtomicMatchApiBundle,
    ExternalOrder,
    ExternalOrderBase,
    FeeTake,
    OrderSide,
    normalize_mint,
)

logger = logging.getLogger(__name__)

# Суммы до u128, стандартных 28 знаков Decimal не хватает
_PRECISION = 80


def _fail(check: ValidationCheck, message: str):
    logger.warning(f"[QuoteValidator] Rejected: {check.value} - {message}")
    raise ValidationError(check, message)


def _parse_price(raw: str) -> Optional[Decimal]:
    try:
        price = Decimal(raw)
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def _check_pair(requested: ExternalOrderBase, base_mint: str, quote_mint: str):
    if normalize_mint(base_mint) != normalize_mint(requested.base_mint) \
            or normalize_mint(quote_mint) != normalize_mint(requested.quote_mint):
        _fail(
            ValidationCheck.MINT_MISMATCH,
            f"expected {requested.base_mint}/{requested.quote_mint}, got {base_mint}/{quote_mint}",
        )


def _check_side(requested: ExternalOrderBase, side: OrderSide):
    if side != requested.side:
        _fail(ValidationCheck.SIDE_MISMATCH, f"expected {requested.side.value}, got {side.value}")


def _check_transfers(requested: ExternalOrderBase, send: ApiExternalAssetTransfer, receive: ApiExternalAssetTransfer):
    # Проверяем реальные ноги расчёта, а не только эхо ордера
    if requested.side == OrderSide.SELL:
        expected_send, expected_receive = requested.base_mint, requested.quote_mint
    else:
        expected_send, expected_receive = requested.quote_mint, requested.base_mint
    if normalize_mint(send.mint) != normalize_mint(expected_send) \
            or normalize_mint(receive.mint) != normalize_mint(expected_receive):
        _fail(
            ValidationCheck.MINT_MISMATCH,
            f"expected send {expected_send} / receive {expected_receive}, got send {send.mint} / receive {receive.mint}",
        )


def _min_fill_leg(requested: ExternalOrder, send: ApiExternalAssetTransfer, receive: ApiExternalAssetTransfer) -> int:
    # min_fill_size задаётся в том же токене, что и сумма ордера
    base_denominated = requested.base_amount > 0 or requested.exact_base_output > 0
    if requested.side == OrderSide.BUY:
        return receive.amount if base_denominated else send.amount
    return send.amount if base_denominated else receive.amount


def _check_terms(
    requested: ExternalOrder,
    send: ApiExternalAssetTransfer,
    receive: ApiExternalAssetTransfer,
    fees: FeeTake,
    price: Optional[Decimal],
):
    # 3. Ненулевые суммы
    if receive.amount <= 0 or send.amount <= 0:
        _fail(ValidationCheck.ZERO_AMOUNT, f"receive={receive.amount}, send={send.amount}")

    # 4. Неотрицательные комиссии
    if fees.relayer_fee < 0 or fees.protocol_fee < 0:
        _fail(ValidationCheck.NEGATIVE_FEE, f"relayer_fee={fees.relayer_fee}, protocol_fee={fees.protocol_fee}")

    # 5. Комиссии в токене получения против валовой выручки
    if price is None:
        _fail(ValidationCheck.INVALID_PRICE, "price is missing, non-positive or unparseable")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        if requested.side == OrderSide.SELL:
            gross = price * send.amount
        else:
            gross = Decimal(send.amount) / price
        if fees.total() > gross:
            _fail(ValidationCheck.FEES_EXCEED_PROCEEDS, f"fees={fees.total()} > gross proceeds={gross}")

    # 6. Минимальный размер исполнения
    if requested.min_fill_size > 0:
        filled = _min_fill_leg(requested, send, receive)
        if filled < requested.min_fill_size:
            _fail(ValidationCheck.MIN_FILL_SIZE, f"filled={filled} < min_fill_size={requested.min_fill_size}")

    # 7. Худшая цена: покупатель платит не больше, продавец получает не меньше
    bound = requested.worst_case_price
    if bound is not None:
        if requested.side == OrderSide.BUY and price > bound:
            _fail(ValidationCheck.PRICE_BOUND, f"price {price} above worst case {bound}")
        if requested.side == OrderSide.SELL and price < bound:
            _fail(ValidationCheck.PRICE_BOUND, f"price {price} below worst case {bound}")


def validate_quote(requested: ExternalOrder, quote: ApiExternalQuote) -> None:
    """Сверяет котировку релейера с ордером, по которому она запрошена."""
    result = quote.match_result
    _check_pair(requested, quote.order.base_mint, quote.order.quote_mint)
    _check_pair(requested, result.base_mint, result.quote_mint)
    _check_side(requested, quote.order.side)
    _check_side(requested, result.direction)
    _check_transfers(requested, quote.send, quote.receive)
    _check_terms(requested, quote.send, quote.receive, quote.fees, _parse_price(quote.price.price))
    logger.debug(f"[QuoteValidator] Quote for {requested.base_mint}/{requested.quote_mint} passed")


def validate_bundle(requested: ExternalOrder, bundle: AtomicMatchApiBundle) -> None:
    """
    Те же проверки для собранного бандла. Пара и сторона берутся из match_result,
    цена считается как quote_amount / base_amount.
    """
    result = bundle.match_result
    _check_pair(requested, result.base_mint, result.quote_mint)
    _check_side(requested, result.direction)
    _check_transfers(requested, bundle.send, bundle.receive)

    price = None
    if result.base_amount > 0 and result.quote_amount > 0:
        with localcontext() as ctx:
            ctx.prec = _PRECISION
            price = Decimal(result.quote_amount) / Decimal(result.base_amount)
    _check_terms(requested, bundle.send, bundle.receive, bundle.fees, price)


def check_order_update(original: ExternalOrderBase, updated: ExternalOrder) -> None:
    # При сборке можно менять суммы и min_fill_size, но не пару и не сторону
    _check_pair(original, updated.base_mint, updated.quote_mint)
    _check_side(original, updated.side)
