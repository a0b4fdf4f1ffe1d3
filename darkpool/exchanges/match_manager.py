# darkpool/exchanges/match_manager.py

import itertools
import logging
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from darkpool.core.errors import InvalidTransitionError, ValidationError
from darkpool.exchanges.api_types import ExternalMatchResponse, ExternalOrder, SignedExternalQuote
from darkpool.exchanges.options import AssembleQuoteOptions, RequestQuoteOptions
from darkpool.exchanges.quote_validator import validate_bundle, validate_quote

# Настройка логирования для MatchManager
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)
# Простой обработчик для вывода в консоль
if not logger.handlers:
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    ch.setFormatter(formatter)
    logger.addHandler(ch)


class MatchState(str, Enum):
    BUILT = "built"
    QUOTE_REQUESTED = "quote_requested"
    QUOTE_RECEIVED = "quote_received"
    VALIDATED = "validated"
    REJECTED = "rejected"
    ASSEMBLED = "assembled"
    SUBMITTED = "submitted"
    SETTLED = "settled"
    EXPIRED = "expired"


# Переходы только вперёд. EXPIRED -> QUOTE_REQUESTED: перезапуск после истечения котировки
_TRANSITIONS = {
    MatchState.BUILT: {MatchState.QUOTE_REQUESTED},
    MatchState.QUOTE_REQUESTED: {MatchState.QUOTE_REQUESTED, MatchState.QUOTE_RECEIVED},
    MatchState.QUOTE_RECEIVED: {MatchState.VALIDATED, MatchState.REJECTED, MatchState.EXPIRED},
    MatchState.VALIDATED: {MatchState.ASSEMBLED, MatchState.EXPIRED},
    MatchState.REJECTED: set(),
    MatchState.ASSEMBLED: {MatchState.SUBMITTED, MatchState.REJECTED, MatchState.EXPIRED},
    MatchState.SUBMITTED: {MatchState.SETTLED, MatchState.EXPIRED},
    MatchState.SETTLED: set(),
    MatchState.EXPIRED: {MatchState.QUOTE_REQUESTED},
}


class MatchFlow:
    """Состояние одного ордера на пути котировка -> сборка -> расчёт."""

    def __init__(self, order: ExternalOrder):
        self.order = order
        self.state = MatchState.BUILT
        self.history: List[MatchState] = [MatchState.BUILT]
        self.quote: Optional[SignedExternalQuote] = None
        self.bundle: Optional[ExternalMatchResponse] = None
        self.tx_hash: Optional[str] = None
        self.error: Optional[str] = None

    def can_advance(self, new_state: MatchState) -> bool:
        return new_state in _TRANSITIONS[self.state]

    def advance(self, new_state: MatchState):
        if not self.can_advance(new_state):
            raise InvalidTransitionError(f"Cannot move match flow from {self.state.value} to {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def expire(self):
        self.advance(MatchState.EXPIRED)


class MatchOutcome(BaseModel):
    flow_key: str
    quote: SignedExternalQuote
    bundle: ExternalMatchResponse
    tx_hash: Optional[str] = None


class MatchManager:
    """
    Проводит ордер через весь цикл: котировка -> проверка -> сборка -> отправка.
    Ничего не повторяет сам: при отсутствии котировки/бандла возвращает None,
    ошибки пробрасываются вызывающему.
    Завершённые потоки убираются из active_flows, последний доступен как last_flow.
    """

    def __init__(self, client, submitter=None):
        self.client = client
        self.submitter = submitter
        # {flow_key: MatchFlow}, только незавершённые потоки
        self.active_flows: Dict[str, MatchFlow] = {}
        self.last_flow: Optional[MatchFlow] = None
        self._flow_counter = itertools.count()

    def _get_flow_key(self, order: ExternalOrder) -> str:
        # Счётчик на случай двух потоков в одну миллисекунду
        return f"{order.base_mint}_{order.side.value}_{int(time.time() * 1000)}_{next(self._flow_counter)}"

    def execute(
        self,
        order: ExternalOrder,
        quote_options: Optional[RequestQuoteOptions] = None,
        assemble_options: Optional[AssembleQuoteOptions] = None,
        submit: bool = True,
    ) -> Optional[MatchOutcome]:
        flow_key = self._get_flow_key(order)
        flow = MatchFlow(order)
        self.active_flows[flow_key] = flow
        self.last_flow = flow
        logger.info(f"[MatchManager] Starting match flow {flow_key}")

        try:
            return self._run_flow(flow_key, flow, quote_options, assemble_options, submit)
        finally:
            # Собранный, но не отправленный бандл остаётся у вызывающего до release_flow
            if flow.state != MatchState.ASSEMBLED:
                self.release_flow(flow_key)

    def _run_flow(
        self,
        flow_key: str,
        flow: MatchFlow,
        quote_options: Optional[RequestQuoteOptions],
        assemble_options: Optional[AssembleQuoteOptions],
        submit: bool,
    ) -> Optional[MatchOutcome]:
        order = flow.order

        # 1. Котировка
        flow.advance(MatchState.QUOTE_REQUESTED)
        quote = self.client.request_quote(order, quote_options)
        if quote is None:
            logger.info(f"[MatchManager] No quote for {flow_key}")
            return None
        flow.quote = quote
        flow.advance(MatchState.QUOTE_RECEIVED)

        # 2. Проверка котировки
        try:
            validate_quote(order, quote.quote)
        except ValidationError as e:
            flow.error = str(e)
            flow.advance(MatchState.REJECTED)
            logger.error(f"[MatchManager] Quote rejected for {flow_key}: {e}")
            raise
        flow.advance(MatchState.VALIDATED)

        # 3. Сборка
        bundle = self.client.assemble_quote(quote, assemble_options)
        if bundle is None:
            flow.expire()
            logger.warning(f"[MatchManager] Quote expired before assembly for {flow_key}")
            return None
        flow.bundle = bundle
        flow.advance(MatchState.ASSEMBLED)

        # Сумма могла измениться через updated_order
        checked_order = order
        if assemble_options is not None and assemble_options.updated_order is not None:
            checked_order = assemble_options.updated_order
        try:
            validate_bundle(checked_order, bundle.match_bundle)
        except ValidationError as e:
            flow.error = str(e)
            flow.advance(MatchState.REJECTED)
            logger.error(f"[MatchManager] Bundle rejected for {flow_key}: {e}")
            raise

        outcome = MatchOutcome(flow_key=flow_key, quote=quote, bundle=bundle)
        if not submit or self.submitter is None:
            logger.info(f"[MatchManager] Bundle ready for {flow_key}, not submitting")
            return outcome

        # 4. Отправка on-chain
        flow.advance(MatchState.SUBMITTED)
        try:
            tx_hash = self.submitter.submit(bundle.match_bundle)
        except Exception as e:
            # Откат или таймаут квитанции: бандл больше не годится, нужна новая котировка
            flow.error = str(e)
            flow.expire()
            logger.error(f"[MatchManager] Settlement failed for {flow_key}: {e}")
            raise
        flow.tx_hash = tx_hash
        flow.advance(MatchState.SETTLED)
        outcome.tx_hash = tx_hash
        logger.info(f"[MatchManager] Match flow {flow_key} settled: {tx_hash}")
        return outcome

    def release_flow(self, flow_key: str) -> Optional[MatchFlow]:
        """
        Убирает поток из активных. Возвращает его или None, если такого нет.
        """
        flow = self.active_flows.pop(flow_key, None)
        if flow is not None:
            logger.debug(f"[MatchManager] Released match flow {flow_key} ({flow.state.value})")
        return flow

    def get_flow(self, flow_key: str) -> Optional[MatchFlow]:
        return self.active_flows.get(flow_key)

    def get_active_flows(self) -> Dict[str, Any]:
        """
        Возвращает копию словаря потоков.
        """
        return self.active_flows.copy()
