"""Local private key wallet.

- Create a wallet from a private key

- Sign transactions with manually managed nonces

- Sign messages to prove control of the deployer account
"""

import logging
from typing import NamedTuple, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from eth_utils import encode_hex
from hexbytes import HexBytes
from web3 import Web3

logger = logging.getLogger(__name__)


class SignedTransactionWithNonce(NamedTuple):
    """A signed transaction together with the nonce it consumed.

    If broadcast fails, the source is retained so we can diagnose the
    cause, like the original gas parameters.
    """

    #: Bytes to broadcast with ``eth_sendRawTransaction``
    raw_transaction: HexBytes

    #: Transaction hash
    hash: HexBytes

    #: What was the source nonce for this transaction
    nonce: int

    #: What was the source address for this transaction
    address: str

    #: Unencoded transaction data as a dict.
    source: Optional[dict] = None

    def __repr__(self):
        return f"<SignedTransactionWithNonce hash:{encode_hex(self.hash)} nonce:{self.nonce}>"


class HotWallet:
    """Hot wallet for signing deployment transactions.

    - Keeps a plain text private key in process memory using
      :py:class:`eth_account.signers.local.LocalAccount` and a nonce counter.

    - Call :py:meth:`sync_nonce` before signing the first transaction.

    Example:

    .. code-block:: python

        wallet = HotWallet.from_private_key(os.environ["PRIVATE_KEY"])
        wallet.sync_nonce(web3)
        signed_tx = wallet.sign_transaction_with_new_nonce(
            {
                "chainId": web3.eth.chain_id,
                "to": DETERMINISTIC_DEPLOYMENT_PROXY,
                "data": salt + init_code,
                "value": 0,
                "gas": 3_000_000,
                "gasPrice": web3.eth.gas_price,
            }
        )
        tx_hash = web3.eth.send_raw_transaction(signed_tx.raw_transaction)

    .. note ::

        This class is not thread safe. If multiple threads sign transactions
        at the same time, nonce tracking may be lost.
    """

    def __init__(self, account: LocalAccount):
        """Create a hot wallet from a local account."""
        self.account = account
        self.current_nonce: Optional[int] = None

    def __repr__(self):
        return f"<Hot wallet {self.account.address}>"

    @property
    def address(self) -> HexAddress:
        """Ethereum address of the wallet."""
        return self.account.address

    def sync_nonce(self, web3: Web3):
        """Initialise the current nonce from the on-chain data."""
        new_nonce = web3.eth.get_transaction_count(self.account.address)
        if self.current_nonce is not None and new_nonce < self.current_nonce:
            # Load balanced nodes sometimes lag behind our last broadcast
            logger.warning("Nonce sync failed, read onchain nonce %d that is older than our current nonce %d", new_nonce, self.current_nonce)
            return
        self.current_nonce = new_nonce
        logger.info("Synced nonce for %s to %d", self.account.address, self.current_nonce)

    def allocate_nonce(self) -> int:
        """Get the next free nonce and increase the counter."""
        assert self.current_nonce is not None, f"Nonce is not yet synced from the blockchain: {self}"
        nonce = self.current_nonce
        self.current_nonce += 1
        return nonce

    def sign_transaction_with_new_nonce(self, tx: dict) -> SignedTransactionWithNonce:
        """Signs a transaction and allocates a nonce for it.

        :param tx:
            Ethereum transaction data as a dict.
            This is modified in-place to include nonce.

        :return:
            A transaction payload and nonce used to generate this transaction.
        """
        assert type(tx) == dict
        assert "nonce" not in tx
        tx["nonce"] = self.allocate_nonce()
        _signed = self.account.sign_transaction(tx)
        return SignedTransactionWithNonce(
            raw_transaction=HexBytes(_signed.raw_transaction),
            hash=HexBytes(_signed.hash),
            nonce=tx["nonce"],
            address=self.address,
            source=tx,
        )

    def sign_message(self, message: str) -> HexBytes:
        """Sign a plain text message (EIP-191).

        Used to prove we control the deployer key before funding it.
        """
        signed = self.account.sign_message(encode_defunct(text=message))
        return HexBytes(signed.signature)

    @staticmethod
    def from_private_key(key: str) -> "HotWallet":
        """Create a hot wallet from a private key that is passed in as a hex string.

        :param key: 0x prefixed hex string
        :return: Ready to go hot wallet account
        """
        assert type(key) == str, f"Expected private key as string, got {type(key)}"
        assert key.startswith("0x"), "This system assumes private keys are prefixed with 0x. Please add 0x prefix to your private key hex string"
        account = Account.from_key(key)
        return HotWallet(account)
