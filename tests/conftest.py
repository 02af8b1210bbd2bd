import json
from collections import OrderedDict

import pytest
from eth_utils import to_checksum_address

from vault_deployment.constants import DEFAULT_PARAMS_FILEPATH
from vault_deployment.exceptions import AlreadyVerified, VerificationFailed
from vault_deployment.ledger import DeploymentLedger
from vault_deployment.params import (
    Deployer,
    DeploymentParameters,
    DeploymentResult,
    DeploymentState,
    ProxyDeployment,
)
from vault_deployment.upgrade import Upgrader
from vault_deployment.verify import VerificationService

TACO_COIN_ADDRESS = to_checksum_address("0x" + "beef" * 10)
VAULT_PROXY_ADDRESS = to_checksum_address("0x" + "aaaa" * 10)
VAULT_IMPL_ADDRESS = to_checksum_address("0x" + "bbbb" * 10)
INITIAL_SUPPLY = "100000000000000000000"
DEPLOYER_ADDRESS = to_checksum_address("0x" + "de" * 20)


def make_address(index: int) -> str:
    return to_checksum_address(f"0x{index:040x}")


class FakeUpgrader(Upgrader):
    """Deploys to sequential addresses and remembers each proxy's implementation."""

    def __init__(self, first_address: int = 0x1000):
        self.calls = list()
        self.implementations = dict()
        self._next_address = first_address

    def deploy_implementation(self, contract_name):
        self.calls.append(("deploy_implementation", contract_name))
        address = make_address(self._next_address)
        self._next_address += 1
        return address

    def upgrade_proxy(self, proxy_address, implementation_address, contract_name):
        self.calls.append(("upgrade_proxy", proxy_address, implementation_address, contract_name))
        self.implementations[proxy_address] = implementation_address

    def get_implementation_address(self, proxy_address):
        self.calls.append(("get_implementation_address", proxy_address))
        return self.implementations.get(proxy_address)


class FakeVerificationService(VerificationService):
    """Records submissions; addresses in `failing` are rejected with their reason."""

    def __init__(self, failing=None):
        self.calls = list()
        self.published = set()
        self.failing = failing or dict()

    def verify(self, address, constructor_args, contract_path=None, contract_name=None):
        self.calls.append(
            {
                "address": address,
                "constructor_args": list(constructor_args),
                "contract_path": contract_path,
                "contract_name": contract_name,
            }
        )
        if address in self.failing:
            raise VerificationFailed(self.failing[address])
        if address in self.published:
            raise AlreadyVerified(f"Contract source code already verified: {address}")
        self.published.add(address)


class FakeDeployer(Deployer):
    """A Deployer whose chain operations hand out sequential addresses."""

    def __init__(self, parameters, autosign=True):
        # skips account and network setup
        self.parameters = parameters
        self.parameters.state.deployer_address = DEPLOYER_ADDRESS
        self.path = None
        self._autosign = autosign
        self.deployed = list()
        self.implementations = dict()
        self._next_address = 0x100

    def _new_address(self):
        address = make_address(self._next_address)
        self._next_address += 1
        return address

    def deploy(self, contract_name, constructor_args):
        self.deployed.append((contract_name, OrderedDict(constructor_args)))
        return DeploymentResult(address=self._new_address(), tx_hash="0x" + "ab" * 32)

    def deploy_behind_proxy(self, implementation_name, init_args, initializer="initialize"):
        self.deployed.append((implementation_name, OrderedDict(init_args)))
        implementation_address = self._new_address()
        return ProxyDeployment(
            proxy_address=self._new_address(),
            implementation_address=implementation_address,
            init_data="0x1234",
            tx_hash="0x" + "cd" * 32,
        )

    def upgrade_proxy(self, proxy_address, implementation_address, contract_name, data=b""):
        self.implementations[proxy_address] = implementation_address

    def get_implementation_address(self, proxy_address):
        return self.implementations.get(proxy_address)


@pytest.fixture
def ledger_filepath(tmp_path):
    return tmp_path / "deployedAddresses.json"


@pytest.fixture
def deployment_ledger(ledger_filepath):
    return DeploymentLedger(ledger_filepath)


@pytest.fixture
def legacy_ledger_data():
    """A ledger as written by the original deploy and upgrade scripts."""
    return OrderedDict(
        [
            (
                "TacoCoin",
                {
                    "address": TACO_COIN_ADDRESS.lower(),
                    "constructorArgs": [INITIAL_SUPPLY],
                },
            ),
            ("VaultProxy", {"address": VAULT_PROXY_ADDRESS}),
            (
                "VaultImpl",
                {
                    "name": "Vault",
                    "address": VAULT_IMPL_ADDRESS,
                    "constructorArgs": [],
                    "contractPath": "contracts/Vault.sol:Vault",
                },
            ),
        ]
    )


@pytest.fixture
def legacy_ledger_file(ledger_filepath, legacy_ledger_data):
    with open(ledger_filepath, "w") as file:
        json.dump(legacy_ledger_data, file, indent=2)
    return ledger_filepath


@pytest.fixture
def upgrader():
    return FakeUpgrader()


@pytest.fixture
def verification_service():
    return FakeVerificationService()


@pytest.fixture
def taco_coin_address():
    return TACO_COIN_ADDRESS


@pytest.fixture
def vault_proxy_address():
    return VAULT_PROXY_ADDRESS


@pytest.fixture
def vault_impl_address():
    return VAULT_IMPL_ADDRESS


@pytest.fixture
def initial_supply():
    return INITIAL_SUPPLY


@pytest.fixture
def deployer_address():
    return DEPLOYER_ADDRESS


@pytest.fixture
def deployer():
    parameters = DeploymentParameters.from_yaml(DEFAULT_PARAMS_FILEPATH, state=DeploymentState())
    return FakeDeployer(parameters)
