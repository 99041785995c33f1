"""Supported networks and JSON-RPC connection set up."""

import logging
import os
from dataclasses import dataclass

from requests.exceptions import RequestException
from web3 import HTTPProvider, Web3
from web3.exceptions import Web3Exception

from create2_deployer.exceptions import ChainReadError, ConfigurationError

logger = logging.getLogger(__name__)

#: Environment variable overriding the public RPC endpoint of a network
JSON_RPC_URL_ENV = "JSON_RPC_URL"


@dataclass(frozen=True, slots=True)
class NetworkConfig:
    """Static information about a deployment target."""

    #: Name used on the command line
    name: str

    #: EIP-155 chain id
    chain_id: int

    #: Public JSON-RPC endpoint
    rpc_url: str

    #: Block explorer root, without trailing slash
    explorer_url: str | None = None

    def get_address_link(self, address: str) -> str | None:
        """Block explorer link for an address."""
        if not self.explorer_url:
            return None
        return f"{self.explorer_url}/address/{address}"


#: Networks we know how to deploy to
NETWORKS: dict[str, NetworkConfig] = {
    "base": NetworkConfig(
        name="base",
        chain_id=8453,
        rpc_url="https://mainnet.base.org",
        explorer_url="https://basescan.org",
    ),
    "base-sepolia": NetworkConfig(
        name="base-sepolia",
        chain_id=84532,
        rpc_url="https://sepolia.base.org",
        explorer_url="https://sepolia.basescan.org",
    ),
    "anvil": NetworkConfig(
        name="anvil",
        chain_id=31337,
        rpc_url="http://localhost:8545",
    ),
}


def get_network(name: str) -> NetworkConfig:
    """Look up a network by its command line name.

    :raise ConfigurationError:
        Unknown network
    """
    network = NETWORKS.get(name)
    if network is None:
        raise ConfigurationError(f"Unknown network: {name}. Use: {' | '.join(NETWORKS)}")
    return network


def read_json_rpc_url(network: NetworkConfig) -> str:
    """Use ``JSON_RPC_URL`` if set, otherwise the public endpoint of the network."""
    return os.environ.get(JSON_RPC_URL_ENV) or network.rpc_url


def create_web3(network: NetworkConfig, json_rpc_url: str | None = None, request_timeout: float = 30) -> Web3:
    """Connect to a network and check we are on the chain we think we are.

    :param json_rpc_url:
        Override RPC endpoint

    :raise ConfigurationError:
        Node serves a different chain

    :raise ChainReadError:
        Node does not answer
    """
    if json_rpc_url is None:
        json_rpc_url = read_json_rpc_url(network)

    web3 = Web3(HTTPProvider(json_rpc_url, request_kwargs={"timeout": request_timeout}))
    try:
        check_chain_id(web3, network)
        block_number = web3.eth.block_number
    except (Web3Exception, RequestException) as e:
        raise ChainReadError(f"Cannot reach {network.name} node: {e}") from e
    logger.info("Connected to %s, chain id %d, last block is %s", network.name, network.chain_id, f"{block_number:,}")
    return web3


def check_chain_id(web3: Web3, network: NetworkConfig):
    """Refuse to deploy if the RPC endpoint points to a wrong chain."""
    chain_id = web3.eth.chain_id
    if chain_id != network.chain_id:
        raise ConfigurationError(f"Network {network.name} expects chain id {network.chain_id}, but the node reports {chain_id}")
