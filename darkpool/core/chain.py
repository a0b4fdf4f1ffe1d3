# darkpool/core/chain.py

import logging
import os
from typing import Any, Dict

from eth_account import Account
from web3 import Web3

from darkpool.core.errors import SettlementError
from darkpool.exchanges.api_types import AtomicMatchApiBundle

logger = logging.getLogger(__name__)


class SettlementSubmitter:
    """
    Подписывает и отправляет транзакцию расчёта из бандла.
    """

    def __init__(self, rpc_url: str, private_key_env: str = "PKEY", web3: Web3 = None, receipt_timeout: int = 120):
        self.private_key_hex = os.getenv(private_key_env)
        if not self.private_key_hex:
            raise ValueError(f"Private key not found in environment variable: {private_key_env}")
        if not self.private_key_hex.startswith("0x"):
            self.private_key_hex = "0x" + self.private_key_hex

        self.account = Account.from_key(self.private_key_hex)
        self.address = self.account.address
        self.web3 = web3 or Web3(Web3.HTTPProvider(rpc_url))
        self.receipt_timeout = receipt_timeout

    @classmethod
    def from_env(cls, rpc_url_env: str = "RPC_URL", private_key_env: str = "PKEY") -> "SettlementSubmitter":
        rpc_url = os.getenv(rpc_url_env)
        if not rpc_url:
            raise ValueError(f"RPC url not found in environment variable: {rpc_url_env}")
        return cls(rpc_url, private_key_env=private_key_env)

    def build_transaction(self, bundle: AtomicMatchApiBundle) -> Dict[str, Any]:
        settlement_tx = bundle.settlement_tx
        tx = {
            "from": self.address,
            "to": Web3.to_checksum_address(settlement_tx.to),
            "data": settlement_tx.data,
            "value": settlement_tx.value_wei(),
            "chainId": self.web3.eth.chain_id,
            "nonce": self.web3.eth.get_transaction_count(self.address),
            "gasPrice": self.web3.eth.gas_price,
        }
        gas = settlement_tx.gas_limit()
        tx["gas"] = gas if gas else self.web3.eth.estimate_gas(tx)
        return tx

    def submit(self, bundle: AtomicMatchApiBundle, wait: bool = True) -> str:
        """
        Отправляет транзакцию. С wait=True ждёт receipt и бросает
        SettlementError, если транзакция не прошла.
        """
        tx = self.build_transaction(bundle)
        signed = self.account.sign_transaction(tx)
        tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"[Settlement] Submitted transaction {tx_hash_hex}")

        if not wait:
            return tx_hash_hex

        receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        if receipt["status"] != 1:
            raise SettlementError(f"Settlement transaction {tx_hash_hex} reverted")
        logger.info(f"[Settlement] Transaction {tx_hash_hex} settled in block {receipt['blockNumber']}")
        return tx_hash_hex
