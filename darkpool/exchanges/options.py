# darkpool/exchanges/options.py

from typing import Optional
from urllib.parse import urlencode

from pydantic import BaseModel

from darkpool.exchanges.api_types import (
    ASSEMBLE_EXTERNAL_MATCH_ROUTE,
    REQUEST_EXTERNAL_QUOTE_ROUTE,
    ExternalOrder,
)

# Query параметры спонсирования газа. Семантика задаётся релейером,
# поэтому здесь только передаём то, что явно выбрал пользователь.
GAS_SPONSORSHIP_QUERY_PARAM = "disable_gas_sponsorship"
GAS_REFUND_ADDRESS_QUERY_PARAM = "refund_address"
GAS_REFUND_NATIVE_ETH_QUERY_PARAM = "refund_native_eth"


def _flag(value: bool) -> str:
    return "true" if value else "false"

def _with_query(route: str, query: list) -> str:
    if not query:
        return route
    return f"{route}?{urlencode(query)}"


class RequestQuoteOptions(BaseModel):
    """
    Параметры запроса котировки.
    disable_gas_sponsorship: отказаться от спонсирования газа
    gas_refund_address: куда вернуть газ (по умолчанию tx.origin, решает релейер)
    refund_native_eth: возврат в нативном ETH вместо токена покупки
    """
    disable_gas_sponsorship: bool = False
    gas_refund_address: Optional[str] = None
    refund_native_eth: bool = False

    def build_request_path(self) -> str:
        query = [
            (GAS_SPONSORSHIP_QUERY_PARAM, _flag(self.disable_gas_sponsorship)),
            (GAS_REFUND_NATIVE_ETH_QUERY_PARAM, _flag(self.refund_native_eth)),
        ]
        if self.gas_refund_address:
            query.append((GAS_REFUND_ADDRESS_QUERY_PARAM, self.gas_refund_address))
        return _with_query(REQUEST_EXTERNAL_QUOTE_ROUTE, query)


class AssembleQuoteOptions(BaseModel):
    """
    Параметры сборки котировки в бандл.

    updated_order может менять base_amount, quote_amount и min_fill_size,
    но не пару и не сторону.
    sponsor_gas / gas_refund_address передаются только если заданы явно:
    когда спонсирование выбрано при запросе котировки, у запроса сборки
    не должно быть query параметров.
    """
    do_gas_estimation: bool = False
    allow_shared: bool = False
    receiver_address: Optional[str] = None
    updated_order: Optional[ExternalOrder] = None
    sponsor_gas: Optional[bool] = None
    gas_refund_address: Optional[str] = None

    def build_request_path(self) -> str:
        query = []
        if self.sponsor_gas is not None:
            query.append((GAS_SPONSORSHIP_QUERY_PARAM, _flag(not self.sponsor_gas)))
        if self.gas_refund_address:
            query.append((GAS_REFUND_ADDRESS_QUERY_PARAM, self.gas_refund_address))
        return _with_query(ASSEMBLE_EXTERNAL_MATCH_ROUTE, query)
