from typing import Optional

from eth_typing import ChecksumAddress

from vault_deployment.constants import VAULT_IMPLEMENTATION
from vault_deployment.exceptions import DeploymentFailed, ProxyNotFound
from vault_deployment.ledger import ImplementationEntry, Ledger, ProxyEntry, upsert
from vault_deployment.utils import default_contract_path


class Upgrader:
    """
    The chain operations an upgrade needs; implemented by
    `vault_deployment.params.Deployer` for the connected network.
    """

    def deploy_implementation(self, contract_name: str) -> ChecksumAddress:
        raise NotImplementedError

    def upgrade_proxy(
        self,
        proxy_address: ChecksumAddress,
        implementation_address: ChecksumAddress,
        contract_name: str,
    ) -> None:
        raise NotImplementedError

    def get_implementation_address(self, proxy_address: ChecksumAddress) -> Optional[ChecksumAddress]:
        raise NotImplementedError


def get_proxy_address(ledger: Ledger, proxy_name: str) -> ChecksumAddress:
    entry = ledger.get(proxy_name)
    if entry is None or not entry.address:
        raise ProxyNotFound(f"{proxy_name} address not found in the deployment ledger.")
    if not isinstance(entry, ProxyEntry):
        raise ProxyNotFound(f"{proxy_name} is recorded in the ledger, but not as a proxy.")
    return entry.address


def upgrade(
    ledger: Ledger,
    proxy_name: str,
    contract_name: str,
    upgrader: Upgrader,
    implementation_name: str = VAULT_IMPLEMENTATION,
    contract_path: Optional[str] = None,
) -> Ledger:
    """
    Deploys a new implementation of `contract_name`, points the proxy recorded under
    `proxy_name` at it, and returns a ledger whose `implementation_name` entry holds the
    implementation address read back from the proxy.

    Every call deploys a fresh implementation, even for an unchanged contract.
    """
    proxy_address = get_proxy_address(ledger, proxy_name)

    print(f"Upgrading {proxy_name} at {proxy_address} to {contract_name}...")
    new_implementation = upgrader.deploy_implementation(contract_name)
    upgrader.upgrade_proxy(proxy_address, new_implementation, contract_name)

    confirmed_implementation = upgrader.get_implementation_address(proxy_address)
    if not confirmed_implementation:
        raise DeploymentFailed(
            contract_name, f"implementation slot of {proxy_address} is empty after upgrade"
        )
    if confirmed_implementation != new_implementation:
        print(
            f"WARNING: {proxy_name} points to {confirmed_implementation}, "
            f"not the deployed {new_implementation}."
        )
    print(f"New implementation address: {confirmed_implementation}")

    entry = ImplementationEntry(
        logical_name=implementation_name,
        address=confirmed_implementation,
        constructor_args=[],
        contract_path=contract_path or default_contract_path(contract_name),
        name=contract_name,
    )
    return upsert(ledger, implementation_name, entry)
