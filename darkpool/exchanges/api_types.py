# darkpool/exchanges/api_types.py

import re
from decimal import Decimal  # Цены приходят строками, сравниваем без потери точности
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

# --- HTTP маршруты релейера ---
REQUEST_EXTERNAL_QUOTE_ROUTE = "/v0/matching-engine/quote"
ASSEMBLE_EXTERNAL_MATCH_ROUTE = "/v0/matching-engine/assemble-external-match"
GET_SUPPORTED_TOKENS_ROUTE = "/v0/supported-tokens"
GET_TOKEN_PRICES_ROUTE = "/v0/token-prices"
GET_ORDER_BOOK_DEPTH_ROUTE = "/v0/order_book/depth/:mint"
GET_ORDER_BOOK_DEPTH_ALL_PAIRS_ROUTE = "/v0/order_book/depth"

# Адрес, которым обозначается нативный ETH
NATIVE_ASSET_ADDR = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_mint(mint: str) -> str:
    return mint.lower()


def _to_int(value: Union[int, str, None]) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    if value.startswith(("0x", "0X")):
        return int(value, 16)
    return int(value)


class _ApiModel(BaseModel):
    # Незнакомые поля сохраняем: котировка уходит обратно на сборку и должна совпасть с подписанной
    model_config = ConfigDict(extra="allow")


class OrderSide(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class ExternalOrderBase(_ApiModel):
    """
    Поля ордера в том виде, в котором их возвращает релейер (без проверок).
    """
    quote_mint: str
    base_mint: str
    side: OrderSide
    base_amount: int = 0
    quote_amount: int = 0
    min_fill_size: int = 0


class ExternalOrder(ExternalOrderBase):
    """
    Ордер внешней стороны. Задаётся ровно одна из сумм: base_amount, quote_amount
    или точный выход exact_base_output / exact_quote_output (сколько токена получить).
    worst_case_price используется только локально при проверке котировки
    и на релейер не отправляется.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    base_amount: int = Field(0, ge=0, description="Сумма в base токене")
    quote_amount: int = Field(0, ge=0, description="Сумма в quote токене")
    exact_base_output: int = Field(0, ge=0, description="Точная сумма base токена на выходе")
    exact_quote_output: int = Field(0, ge=0, description="Точная сумма quote токена на выходе")
    min_fill_size: int = Field(0, ge=0, description="Минимальный размер исполнения, 0 = без ограничения")
    worst_case_price: Optional[Decimal] = Field(None, gt=0, exclude=True, description="Худшая допустимая цена (quote за base)")

    @field_validator("quote_mint", "base_mint")
    @classmethod
    def check_mint(cls, value: str) -> str:
        if not _ADDRESS_RE.match(value):
            raise ValueError(f"invalid mint: {value}")
        return value

    @model_validator(mode="after")
    def check_amounts(self) -> "ExternalOrder":
        amounts = [self.base_amount, self.quote_amount, self.exact_base_output, self.exact_quote_output]
        set_count = sum(1 for amount in amounts if amount)
        if set_count > 1:
            raise ValueError(
                "cannot set both `base_amount` and `quote_amount` (or more than one of the amounts and exact outputs)"
            )
        if set_count == 0:
            raise ValueError(
                "must set either `base_amount` or `quote_amount` (or one of `exact_base_output`, `exact_quote_output`)"
            )
        return self

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class FeeTake(_ApiModel):
    """Комиссии внешней стороны, всегда в токене получения."""
    relayer_fee: int
    protocol_fee: int

    def total(self) -> int:
        return self.relayer_fee + self.protocol_fee


class ApiExternalAssetTransfer(_ApiModel):
    mint: str
    amount: int


class ApiExternalMatchResult(_ApiModel):
    quote_mint: str
    base_mint: str
    quote_amount: int
    base_amount: int
    direction: OrderSide


class ApiTimestampedPrice(_ApiModel):
    price: str
    timestamp: int

    def as_decimal(self) -> Decimal:
        return Decimal(self.price)


class ApiExternalQuote(_ApiModel):
    order: ExternalOrderBase
    match_result: ApiExternalMatchResult
    fees: FeeTake
    send: ApiExternalAssetTransfer
    receive: ApiExternalAssetTransfer
    price: ApiTimestampedPrice
    timestamp: int


class GasSponsorshipInfo(_ApiModel):
    refund_amount: int
    refund_native_eth: bool
    refund_address: Optional[str] = None


def _unwrap_sponsorship(data: Any) -> Any:
    # Старые версии релейера присылают {"gas_sponsorship_info": {...}, "signature": "..."}
    if isinstance(data, dict):
        info = data.get("gas_sponsorship_info")
        if isinstance(info, dict) and "gas_sponsorship_info" in info:
            data = dict(data)
            data["gas_sponsorship_info"] = info["gas_sponsorship_info"]
    return data


class SignedExternalQuote(_ApiModel):
    quote: ApiExternalQuote
    signature: str
    gas_sponsorship_info: Optional[GasSponsorshipInfo] = None

    @model_validator(mode="before")
    @classmethod
    def unwrap_sponsorship(cls, data: Any) -> Any:
        return _unwrap_sponsorship(data)

    def to_signed_quote_wire(self) -> Dict[str, Any]:
        """Котировка и подпись ровно в том виде, в котором их подписал релейер."""
        return {"quote": self.quote.model_dump(mode="json"), "signature": self.signature}


class SettlementTransaction(_ApiModel):
    """
    Транзакция расчёта, собранная релейером. Поле calldata приходит как `input` или `data`.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Optional[Union[str, int]] = None
    to: str
    data: str = Field("0x", validation_alias=AliasChoices("data", "input"))
    value: Union[int, str] = 0
    gas: Optional[Union[int, str]] = None
    from_address: Optional[str] = Field(None, alias="from")

    def value_wei(self) -> int:
        return _to_int(self.value)

    def gas_limit(self) -> Optional[int]:
        if self.gas is None:
            return None
        return _to_int(self.gas)


class AtomicMatchApiBundle(_ApiModel):
    match_result: ApiExternalMatchResult
    fees: FeeTake
    receive: ApiExternalAssetTransfer
    send: ApiExternalAssetTransfer
    settlement_tx: SettlementTransaction


class ExternalMatchResponse(_ApiModel):
    match_bundle: AtomicMatchApiBundle
    gas_sponsored: bool = False
    gas_sponsorship_info: Optional[GasSponsorshipInfo] = None

    @model_validator(mode="before")
    @classmethod
    def unwrap_sponsorship(cls, data: Any) -> Any:
        return _unwrap_sponsorship(data)


# --- Токены и цены ---

class ApiToken(_ApiModel):
    address: str
    symbol: str


class TokenPrice(_ApiModel):
    base_token: str
    quote_token: str
    price: float  # На проводе строка, pydantic приводит к float


class DepthSide(_ApiModel):
    total_quantity: int
    total_quantity_usd: float


class FeeRates(_ApiModel):
    relayer_fee_rate: float
    protocol_fee_rate: float


class OrderBookDepth(_ApiModel):
    price: float
    timestamp: int
    buy: DepthSide
    sell: DepthSide
    address: Optional[str] = None
    fee_rates: Optional[FeeRates] = None


class GetDepthForAllPairsResponse(_ApiModel):
    pairs: List[OrderBookDepth]


class GetSupportedTokensResponse(_ApiModel):
    tokens: List[ApiToken]


class GetTokenPricesResponse(_ApiModel):
    token_prices: List[TokenPrice]
