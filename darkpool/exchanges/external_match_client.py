# darkpool/exchanges/external_match_client.py

import json
import logging
import os
from typing import Any, Callable, List, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from darkpool.core.auth import RequestAuthenticator
from darkpool.core.errors import AuthError, TransportError
from darkpool.core.relayer_client import RelayerHttpClient
from darkpool.exchanges.api_types import (
    GET_ORDER_BOOK_DEPTH_ALL_PAIRS_ROUTE,
    GET_ORDER_BOOK_DEPTH_ROUTE,
    GET_SUPPORTED_TOKENS_ROUTE,
    GET_TOKEN_PRICES_ROUTE,
    ApiToken,
    ExternalMatchResponse,
    ExternalOrder,
    GetDepthForAllPairsResponse,
    GetSupportedTokensResponse,
    GetTokenPricesResponse,
    OrderBookDepth,
    SignedExternalQuote,
    TokenPrice,
)
from darkpool.exchanges.options import AssembleQuoteOptions, RequestQuoteOptions
from darkpool.exchanges.quote_validator import check_order_update

logger = logging.getLogger(__name__)

MAINNET_BASE_URL = "https://mainnet.auth-server.renegade.fi"
TESTNET_BASE_URL = "https://testnet.auth-server.renegade.fi"

T = TypeVar("T")


def _parse_response(data: Any, parse: Callable[[Any], T]) -> T:
    # Тело 200 ответа тоже недоверенное: кривая структура -> TransportError
    try:
        return parse(data)
    except (KeyError, TypeError, AttributeError, PydanticValidationError) as e:
        body = json.dumps(data)
        logger.error(f"[ExternalMatch] Unexpected response format: {body}")
        raise TransportError(f"Unexpected response format: {e}", status=200, body=body) from e


def _signed_quote_from_response(data: Any) -> SignedExternalQuote:
    signed = data["signed_quote"]
    return SignedExternalQuote.model_validate({
        "quote": signed["quote"],
        "signature": signed["signature"],
        "gas_sponsorship_info": data.get("gas_sponsorship_info"),
    })


class ExternalMatchClient:
    """
    Клиент релейера для external match: котировки, сборка бандлов, токены и цены.
    Методы котировки и сборки возвращают None, если у релейера нет матча (HTTP 204).
    """

    def __init__(self, api_key: str, api_secret: str, base_url: Optional[str] = None, is_testnet: bool = False, timeout: float = 15):
        # Выбираем URL в зависимости от testnet
        if base_url is None:
            base_url = TESTNET_BASE_URL if is_testnet else MAINNET_BASE_URL
        self.base_url = base_url
        self.authenticator = RequestAuthenticator.from_base64(api_key, api_secret)
        self.http_client = RelayerHttpClient(base_url, self.authenticator, timeout=timeout)

    @classmethod
    def from_env(cls, api_key_env: str = "EXTERNAL_MATCH_KEY", api_secret_env: str = "EXTERNAL_MATCH_SECRET", **kwargs) -> "ExternalMatchClient":
        api_key = os.getenv(api_key_env)
        api_secret = os.getenv(api_secret_env)
        if not api_key or not api_secret:
            raise AuthError(f"API key or secret not found in environment variables: {api_key_env}, {api_secret_env}")
        return cls(api_key, api_secret, **kwargs)

    def request_quote(self, order: ExternalOrder, options: Optional[RequestQuoteOptions] = None) -> Optional[SignedExternalQuote]:
        """
        Запрашивает котировку. POST /v0/matching-engine/quote
        """
        options = options or RequestQuoteOptions()
        path = options.build_request_path()
        data = self.http_client.post_json(path, {"external_order": order.to_wire()})
        if data is None:
            logger.info(f"[ExternalMatch] No quote available for {order.base_mint}/{order.quote_mint} {order.side.value}")
            return None

        return _parse_response(data, _signed_quote_from_response)

    def assemble_quote(self, quote: SignedExternalQuote, options: Optional[AssembleQuoteOptions] = None) -> Optional[ExternalMatchResponse]:
        """
        Собирает котировку в бандл с транзакцией расчёта.
        POST /v0/matching-engine/assemble-external-match
        """
        options = options or AssembleQuoteOptions()
        updated_order = None
        if options.updated_order is not None:
            check_order_update(quote.quote.order, options.updated_order)
            updated_order = options.updated_order.to_wire()

        body = {
            "signed_quote": quote.to_signed_quote_wire(),
            "receiver_address": options.receiver_address,
            "do_gas_estimation": options.do_gas_estimation,
            "allow_shared": options.allow_shared,
            "updated_order": updated_order,
        }
        data = self.http_client.post_json(options.build_request_path(), body)
        if data is None:
            logger.info("[ExternalMatch] No bundle available for quote")
            return None
        return _parse_response(data, ExternalMatchResponse.model_validate)

    def get_supported_tokens(self) -> List[ApiToken]:
        data = self.http_client.get_json(GET_SUPPORTED_TOKENS_ROUTE)
        if data is None:
            return []
        return _parse_response(data, GetSupportedTokensResponse.model_validate).tokens

    def get_token_prices(self) -> List[TokenPrice]:
        data = self.http_client.get_json(GET_TOKEN_PRICES_ROUTE)
        if data is None:
            return []
        return _parse_response(data, GetTokenPricesResponse.model_validate).token_prices

    def get_order_book_depth(self, mint: str) -> Optional[OrderBookDepth]:
        path = GET_ORDER_BOOK_DEPTH_ROUTE.replace(":mint", mint)
        data = self.http_client.get_json(path)
        if data is None:
            return None
        return _parse_response(data, OrderBookDepth.model_validate)

    def get_order_book_depth_all_pairs(self) -> List[OrderBookDepth]:
        """
        Глубина книги по всем поддерживаемым парам. GET /v0/order_book/depth
        """
        data = self.http_client.get_json(GET_ORDER_BOOK_DEPTH_ALL_PAIRS_ROUTE)
        if data is None:
            return []
        return _parse_response(data, GetDepthForAllPairsResponse.model_validate).pairs
