"""Transaction signing and broadcasting.

:py:class:`TransactionSubmitter` is the only capability the deployment core
needs from a wallet: *sign and broadcast this, give me the hash*.
Whether the key lives in this process (:py:class:`HotWalletSubmitter`)
or behind a node or a custodial signer speaking JSON-RPC
(:py:class:`Web3ProviderSubmitter`) is a configuration detail.

Submitters never wait for the transaction to be mined.
"""

import logging
from abc import ABC, abstractmethod
from pprint import pformat

from eth_typing import HexAddress
from eth_utils import encode_hex, to_checksum_address
from hexbytes import HexBytes
from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import Web3Exception

from create2_deployer.exceptions import SubmissionError
from create2_deployer.hotwallet import HotWallet

logger = logging.getLogger(__name__)

#: What the node and the signer may throw at us when refusing a transaction
_BROADCAST_ERRORS = (ValueError, Web3Exception, RequestException)


class TransactionSubmitter(ABC):
    """Sign and broadcast a state-changing transaction."""

    @abstractmethod
    def send(self, sender: HexAddress | str, to: HexAddress | str, data: bytes, value: int = 0) -> HexBytes:
        """Broadcast a transaction from ``sender``.

        :return:
            Transaction hash

        :raise SubmissionError:
            Signer or node rejected the transaction
        """


def fill_in_gas_price(web3: Web3, tx: dict) -> dict:
    """Fill fee fields of a transaction from the node defaults.

    - EIP-1559 chains get ``maxFeePerGas`` and ``maxPriorityFeePerGas``

    - Legacy chains get ``gasPrice``

    .. note ::

        Mutates ``tx`` in place.
    """
    last_block = web3.eth.get_block("latest")
    base_fee = last_block.get("baseFeePerGas")

    if base_fee is not None:
        max_priority_fee_per_gas = web3.eth.max_priority_fee
        max_fee_per_gas = max_priority_fee_per_gas + 2 * base_fee
        tx["maxFeePerGas"] = max_fee_per_gas
        tx["maxPriorityFeePerGas"] = max_priority_fee_per_gas
        tx.pop("gasPrice", None)
    else:
        tx["gasPrice"] = web3.eth.gas_price

    return tx


class HotWalletSubmitter(TransactionSubmitter):
    """Sign locally with a private key and broadcast over JSON-RPC."""

    def __init__(self, web3: Web3, wallet: HotWallet):
        self.web3 = web3
        self.wallet = wallet

    def __repr__(self):
        return f"<HotWalletSubmitter {self.wallet.address}>"

    def send(self, sender: HexAddress | str, to: HexAddress | str, data: bytes, value: int = 0) -> HexBytes:
        if sender.lower() != self.wallet.address.lower():
            raise SubmissionError(f"Hot wallet {self.wallet.address} cannot sign for {sender}")

        web3 = self.web3

        tx = {
            "from": self.wallet.address,
            "to": to_checksum_address(to),
            "data": HexBytes(data),
            "value": value,
        }

        try:
            if self.wallet.current_nonce is None:
                self.wallet.sync_nonce(web3)
            tx["chainId"] = web3.eth.chain_id
            tx["gas"] = web3.eth.estimate_gas(tx)
            fill_in_gas_price(web3, tx)
            signed_tx = self.wallet.sign_transaction_with_new_nonce(tx)
            tx_hash = web3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except _BROADCAST_ERRORS as e:
            # Nonce may or may not have been consumed, read it again next time
            self.wallet.current_nonce = None
            raise SubmissionError(f"Could not broadcast transaction from {sender} to {to}: {e}\nTransaction:\n{pformat(_censor(tx))}") from e

        logger.info("Broadcasted %s, nonce %d, gas limit %s", encode_hex(tx_hash), signed_tx.nonce, f"{tx['gas']:,}")
        return HexBytes(tx_hash)


class Web3ProviderSubmitter(TransactionSubmitter):
    """Let the node sign with ``eth_sendTransaction``.

    For accounts managed by the node (Anvil) or by a remote signer
    that proxies JSON-RPC (Clef, Web3Signer and custodial wallet gateways).
    The signer fills in nonce, gas and fees.
    """

    def __init__(self, web3: Web3):
        self.web3 = web3

    def send(self, sender: HexAddress | str, to: HexAddress | str, data: bytes, value: int = 0) -> HexBytes:
        tx = {
            "from": to_checksum_address(sender),
            "to": to_checksum_address(to),
            "data": HexBytes(data),
            "value": value,
        }
        try:
            tx_hash = self.web3.eth.send_transaction(tx)
        except _BROADCAST_ERRORS as e:
            raise SubmissionError(f"Signer refused transaction from {sender} to {to}: {e}") from e

        logger.info("Broadcasted %s through the provider signer", encode_hex(tx_hash))
        return HexBytes(tx_hash)


def _censor(tx: dict) -> dict:
    """Keep error messages readable when init code is tens of kilobytes."""
    censored = dict(tx)
    data = censored.get("data")
    if data is not None and len(data) > 64:
        censored["data"] = f"<{len(data)} bytes>"
    return censored
