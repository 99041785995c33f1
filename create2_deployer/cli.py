"""Command line entry point.

Deploy upgradeable contracts behind ERC-1967 proxies through the
deterministic deployment proxy (CREATE2 factory).

Build the contracts with Forge first, then:

.. code-block:: shell

    export PRIVATE_KEY=...
    export CONTRACT_OWNER=0x...

    # Check keys, artifacts and balances
    create2-deploy verify --network base-sepolia

    # See what would happen
    create2-deploy deploy --network base-sepolia --dry-run

    # Deploy, safe to re-run after a failure
    create2-deploy deploy --network base-sepolia

Settings can also be put in a ``.env`` file in the working directory.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import ValidationError, encode_hex, is_address, to_checksum_address
from web3 import Web3

from create2_deployer.artifacts import load_creation_bytecode
from create2_deployer.chain import NetworkConfig, create_web3, get_network
from create2_deployer.create2 import DETERMINISTIC_DEPLOYMENT_PROXY
from create2_deployer.exceptions import ConfigurationError, DeploymentError, PlanAborted
from create2_deployer.executor import StepExecutor
from create2_deployer.hotwallet import HotWallet
from create2_deployer.orchestrator import DeploymentReport, Orchestrator
from create2_deployer.plan import DeploymentPlan, ProxiedContract
from create2_deployer.reader import Web3ChainReader
from create2_deployer.submitter import HotWalletSubmitter, TransactionSubmitter, Web3ProviderSubmitter
from create2_deployer.utils import format_ether, setup_console_logging

logger = logging.getLogger(__name__)

app = typer.Typer(help="Deterministic CREATE2 deployment of proxied contracts")

#: Upgradeable contracts deployed by default, in this order
DEFAULT_CONTRACTS = ["BuyrToken", "SellrToken"]

#: Message signed by ``verify`` to prove we control the deployer key
VERIFICATION_MESSAGE = "create2-deployer deployment verification"


def _parse_address(value: str, name: str) -> str:
    if not is_address(value):
        raise ConfigurationError(f"{name} is not a valid address: {value}")
    return to_checksum_address(value)


def _load_wallet(private_key: str) -> HotWallet:
    """Turn a bad key into a configuration error instead of a traceback."""
    if not private_key.startswith("0x"):
        raise ConfigurationError("PRIVATE_KEY must be a 0x prefixed hex string")
    try:
        return HotWallet.from_private_key(private_key)
    except (ValueError, ValidationError) as e:
        # Do not echo key material
        raise ConfigurationError("PRIVATE_KEY is not a valid private key") from e


def _load_plan(
    artifacts_dir: Path,
    contracts: list[str],
    proxy_contract: str,
    owner: str,
    factory: str,
    first_salt: int,
) -> DeploymentPlan:
    proxied = [ProxiedContract(name=name, implementation_bytecode=load_creation_bytecode(artifacts_dir, name)) for name in contracts]
    proxy_bytecode = load_creation_bytecode(artifacts_dir, proxy_contract)
    for c in proxied:
        logger.info("%s bytecode: %d bytes", c.name, len(c.implementation_bytecode))
    logger.info("%s bytecode: %d bytes", proxy_contract, len(proxy_bytecode))
    return DeploymentPlan(
        proxy_bytecode=proxy_bytecode,
        owner=_parse_address(owner, "Contract owner"),
        contracts=proxied,
        factory=_parse_address(factory, "Factory"),
        first_salt=first_salt,
    )


def _create_submitter(web3: Web3, private_key: str | None, deployer_address: str | None) -> tuple[TransactionSubmitter, str]:
    """Local key if we have one, otherwise let the node sign."""
    if private_key:
        wallet = _load_wallet(private_key)
        return HotWalletSubmitter(web3, wallet), wallet.address

    if not deployer_address:
        raise ConfigurationError("Set PRIVATE_KEY, or DEPLOYER_ADDRESS for an account managed by the node or a remote signer")

    return Web3ProviderSubmitter(web3), _parse_address(deployer_address, "Deployer address")


def _print_summary(network: NetworkConfig, report: DeploymentReport):
    print()
    print("Deployment complete" if not report.dry_run else "Dry run complete")
    print(f"  Network:        {network.name}")
    print(f"  Owner:          {report.owner}")
    print(f"  Deployer:       {report.deployer}")
    for contract in report.contracts:
        print(f"  {contract.label + ':':<22}{contract.address} ({contract.status.name})")
    if report.gas_spent is not None:
        print(f"  Gas spent:      {format_ether(report.gas_spent)}")
        print(f"  Remaining:      {format_ether(report.balance_after)}")

    print()
    print("Add to .env:")
    for contract in report.contracts:
        kind = "ADDRESS" if contract.implementation_address is not None else "IMPL_ADDRESS"
        name = contract.label.split(" ")[0]
        print(f"  {_env_name(name)}_{kind}={contract.address}")

    proxies = report.get_proxies()
    if network.explorer_url and proxies:
        print()
        print("Verify on the explorer:")
        for contract in proxies:
            print(f"  {network.get_address_link(contract.address)}")


def _env_name(contract_name: str) -> str:
    """BuyrToken -> BUYR_TOKEN"""
    out = ""
    for i, char in enumerate(contract_name):
        if char.isupper() and i > 0 and not contract_name[i - 1].isupper():
            out += "_"
        out += char.upper()
    return out


@app.command()
def deploy(
    *,
    network: str = typer.Option("base-sepolia", help="Target network: base, base-sepolia or anvil"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Predict and check addresses, send nothing"),
    owner: str = typer.Option(..., envvar="CONTRACT_OWNER", help="Owner passed to initialize() of every proxy"),
    private_key: Optional[str] = typer.Option(None, envvar="PRIVATE_KEY", help="Deployer private key, 0x prefixed"),
    deployer_address: Optional[str] = typer.Option(None, envvar="DEPLOYER_ADDRESS", help="Node managed deployer account, used without a private key"),
    json_rpc_url: Optional[str] = typer.Option(None, envvar="JSON_RPC_URL", help="Override the public RPC endpoint"),
    artifacts_dir: Path = typer.Option(Path("out"), envvar="ARTIFACTS_DIR", help="Forge build output"),
    contract: list[str] = typer.Option(DEFAULT_CONTRACTS, "--contract", help="Upgradeable contract to deploy, repeatable"),
    proxy_contract: str = typer.Option("ERC1967Proxy", help="Proxy contract artifact name"),
    factory: str = typer.Option(DETERMINISTIC_DEPLOYMENT_PROXY, help="CREATE2 factory address"),
    first_salt: int = typer.Option(1, help="Salt of the first step, following steps count up"),
):
    """Deploy implementation and proxy for each contract, skipping what is already on-chain."""
    setup_console_logging()

    try:
        network_config = get_network(network)
        plan = _load_plan(artifacts_dir, contract, proxy_contract, owner, factory, first_salt)
        web3 = create_web3(network_config, json_rpc_url)
        submitter, deployer = _create_submitter(web3, private_key, deployer_address)
        reader = Web3ChainReader(web3)

        logger.info("Network: %s, deployer: %s, owner: %s, factory: %s, dry run: %s", network_config.name, deployer, plan.owner, plan.factory, dry_run)

        executor = StepExecutor(reader=reader, submitter=submitter, deployer=deployer)
        orchestrator = Orchestrator(plan, executor, reader, deployer)
        report = orchestrator.run(dry_run=dry_run)
    except PlanAborted as e:
        logger.error("Deployment failed at step %d (%s): %s", e.step.position + 1, e.step.label, e.error)
        for done in e.completed:
            logger.error("  completed: %s at %s (%s)", done.label, done.address, done.status.name)
        logger.error("Fix the problem and run again, completed steps will be skipped")
        raise typer.Exit(code=1) from e
    except DeploymentError as e:
        logger.error("Deployment failed: %s", e)
        raise typer.Exit(code=1) from e

    _print_summary(network_config, report)

    if not report.ownership_ok:
        logger.warning("Some proxies report an unexpected owner, see above")


@app.command()
def predict(
    *,
    network: str = typer.Option("base-sepolia", help="Target network: base, base-sepolia or anvil"),
    owner: str = typer.Option(..., envvar="CONTRACT_OWNER", help="Owner passed to initialize() of every proxy"),
    artifacts_dir: Path = typer.Option(Path("out"), envvar="ARTIFACTS_DIR", help="Forge build output"),
    contract: list[str] = typer.Option(DEFAULT_CONTRACTS, "--contract", help="Upgradeable contract to deploy, repeatable"),
    proxy_contract: str = typer.Option("ERC1967Proxy", help="Proxy contract artifact name"),
    factory: str = typer.Option(DETERMINISTIC_DEPLOYMENT_PROXY, help="CREATE2 factory address"),
    first_salt: int = typer.Option(1, help="Salt of the first step, following steps count up"),
):
    """Print the addresses a deployment would use, without connecting to any node."""
    setup_console_logging(default_log_level="warning")

    try:
        network_config = get_network(network)
        plan = _load_plan(artifacts_dir, contract, proxy_contract, owner, factory, first_salt)
    except DeploymentError as e:
        logger.error("Cannot build the plan: %s", e)
        raise typer.Exit(code=1) from e

    for position, (label, address) in enumerate(plan.predict_addresses().items()):
        line = f"{label + ':':<22}{address} (salt {plan.first_salt + position})"
        link = network_config.get_address_link(address)
        if link:
            line += f" {link}"
        print(line)


@app.command()
def verify(
    *,
    network: str = typer.Option("base-sepolia", help="Target network: base, base-sepolia or anvil"),
    private_key: str = typer.Option(..., envvar="PRIVATE_KEY", help="Deployer private key, 0x prefixed"),
    owner: str = typer.Option(..., envvar="CONTRACT_OWNER", help="Owner passed to initialize() of every proxy"),
    expected_deployer: Optional[str] = typer.Option(None, envvar="EXPECTED_DEPLOYER", help="Fail unless the private key belongs to this address"),
    json_rpc_url: Optional[str] = typer.Option(None, envvar="JSON_RPC_URL", help="Override the public RPC endpoint"),
    artifacts_dir: Path = typer.Option(Path("out"), envvar="ARTIFACTS_DIR", help="Forge build output"),
    contract: list[str] = typer.Option(DEFAULT_CONTRACTS, "--contract", help="Upgradeable contract to deploy, repeatable"),
    proxy_contract: str = typer.Option("ERC1967Proxy", help="Proxy contract artifact name"),
):
    """Pre-flight checks before funding the deployer and deploying."""
    setup_console_logging()

    try:
        wallet = _load_wallet(private_key)
        owner = _parse_address(owner, "Contract owner")

        logger.info("1. Deployer identity: %s", wallet.address)
        if expected_deployer and wallet.address.lower() != expected_deployer.lower():
            raise ConfigurationError(f"Private key belongs to {wallet.address}, expected {expected_deployer}")

        signature = wallet.sign_message(VERIFICATION_MESSAGE)
        recovered = Account.recover_message(encode_defunct(text=VERIFICATION_MESSAGE), signature=signature)
        if recovered != wallet.address:
            raise ConfigurationError(f"Signature recovers to {recovered}, not {wallet.address}")
        logger.info("2. Signing authority: OK, signature %s...", encode_hex(signature)[0:20])

        if owner.lower() == wallet.address.lower():
            logger.warning("3. Ownership: deployer is also the owner, it keeps admin rights after deployment")
        else:
            logger.info("3. Ownership: owner %s, deployer is only a gas payer", owner)

        plan = _load_plan(artifacts_dir, contract, proxy_contract, owner, DETERMINISTIC_DEPLOYMENT_PROXY, 1)
        logger.info("4. Artifacts: %d contracts and proxy loaded", len(plan.contracts))

        network_config = get_network(network)
        web3 = create_web3(network_config, json_rpc_url)
        reader = Web3ChainReader(web3)
        deployer_balance = reader.get_balance(wallet.address)
        owner_balance = reader.get_balance(owner)
        logger.info("5. Balances on %s: deployer %s, owner %s", network_config.name, format_ether(deployer_balance), format_ether(owner_balance))

        if not reader.get_code(plan.factory):
            raise ConfigurationError(f"CREATE2 factory {plan.factory} is not deployed on {network_config.name}")

        if deployer_balance == 0:
            logger.warning("Deployer needs gas money, send some ETH to %s", wallet.address)

    except DeploymentError as e:
        logger.error("Verification failed: %s", e)
        raise typer.Exit(code=1) from e

    logger.info("All checks passed, safe to fund and deploy")


def main():
    """Console script entry point."""
    load_dotenv()
    app()


if __name__ == "__main__":
    main()
