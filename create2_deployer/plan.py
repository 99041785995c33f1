"""Ordered deployment steps for implementation + proxy pairs.

For every upgradeable contract we deploy two things:

1. the implementation contract

2. an ERC-1967 proxy whose constructor points to the implementation
   and calls ``initialize(owner)`` through it

Salts are reserved by step position, not by success. A step at position
``n`` always gets salt ``first_salt + n``, so re-running a plan where some
steps were already done predicts the same addresses for them and continues
with the same salts a from-scratch run would use for the rest.
"""

import logging
from dataclasses import dataclass

from eth_typing import ChecksumAddress, HexAddress
from eth_utils import to_checksum_address

from create2_deployer.abi import DEFAULT_INITIALIZER, encode_initializer_call, encode_proxy_init_code
from create2_deployer.create2 import DETERMINISTIC_DEPLOYMENT_PROXY, encode_salt
from create2_deployer.executor import DeploymentStep

logger = logging.getLogger(__name__)

#: Implementation + proxy
STEPS_PER_CONTRACT = 2


@dataclass(frozen=True, slots=True)
class ProxiedContract:
    """An upgradeable contract to be deployed behind a proxy."""

    #: Contract name, e.g. ``BuyrToken``
    name: str

    #: Implementation creation bytecode, no constructor arguments
    implementation_bytecode: bytes

    @property
    def implementation_label(self) -> str:
        return f"{self.name} impl"

    @property
    def proxy_label(self) -> str:
        return f"{self.name} proxy"


class DeploymentPlan:
    """Produce the steps of a deployment in a fixed order.

    For contracts ``[A, B]`` the order is implementation A, proxy A,
    implementation B, proxy B.

    The plan holds no execution state, it only turns
    positions and already known addresses to :py:class:`DeploymentStep`.
    """

    def __init__(
        self,
        proxy_bytecode: bytes,
        owner: HexAddress | str,
        contracts: list[ProxiedContract],
        factory: HexAddress | str = DETERMINISTIC_DEPLOYMENT_PROXY,
        first_salt: int = 1,
        initializer: str = DEFAULT_INITIALIZER,
    ):
        assert proxy_bytecode, "Proxy creation bytecode missing"
        assert len(contracts) > 0, "Nothing to deploy"
        names = [c.name for c in contracts]
        assert len(set(names)) == len(names), f"Duplicate contract names: {names}"
        assert first_salt >= 0, f"Bad first salt {first_salt}"

        self.proxy_bytecode = bytes(proxy_bytecode)
        self.owner = to_checksum_address(owner)
        self.contracts = list(contracts)
        self.factory = to_checksum_address(factory)
        self.first_salt = first_salt
        self.initializer = initializer

    def __repr__(self):
        return f"<DeploymentPlan {len(self)} steps, salts {self.first_salt}-{self.first_salt + len(self) - 1}, owner {self.owner}>"

    def __len__(self) -> int:
        return len(self.contracts) * STEPS_PER_CONTRACT

    @property
    def initializer_call_data(self) -> bytes:
        """Call data the proxy constructor forwards to the implementation."""
        return encode_initializer_call(self.owner, self.initializer)

    def salt_for(self, position: int) -> bytes:
        """Salt of the step at ``position``."""
        assert 0 <= position < len(self), f"Position {position} out of range for {self}"
        return encode_salt(self.first_salt + position)

    def build_implementation_step(self, index: int) -> DeploymentStep:
        """Step deploying the implementation of ``contracts[index]``."""
        contract = self.contracts[index]
        position = index * STEPS_PER_CONTRACT
        return DeploymentStep(
            label=contract.implementation_label,
            init_code=bytes(contract.implementation_bytecode),
            salt=self.salt_for(position),
            factory=self.factory,
            position=position,
        )

    def build_proxy_step(self, index: int, implementation_address: HexAddress | str) -> DeploymentStep:
        """Step deploying the proxy of ``contracts[index]``.

        :param implementation_address:
            Where the implementation step ended up. Part of the init code,
            so a different implementation gives a different proxy address.
        """
        contract = self.contracts[index]
        position = index * STEPS_PER_CONTRACT + 1
        init_code = encode_proxy_init_code(self.proxy_bytecode, implementation_address, self.initializer_call_data)
        return DeploymentStep(
            label=contract.proxy_label,
            init_code=init_code,
            salt=self.salt_for(position),
            factory=self.factory,
            position=position,
        )

    def predict_addresses(self) -> dict[str, ChecksumAddress]:
        """All step addresses without touching the chain.

        :return:
            Step label -> predicted address, in plan order
        """
        addresses = {}
        for index in range(len(self.contracts)):
            implementation_step = self.build_implementation_step(index)
            proxy_step = self.build_proxy_step(index, implementation_step.predicted_address)
            addresses[implementation_step.label] = implementation_step.predicted_address
            addresses[proxy_step.label] = proxy_step.predicted_address
        return addresses
