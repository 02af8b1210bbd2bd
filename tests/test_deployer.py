from collections import OrderedDict

import pytest
from eth_utils import is_checksum_address

from vault_deployment.exceptions import DeploymentFailed, InitializationFailed
from vault_deployment.ledger import (
    ContractEntry,
    DeploymentLedger,
    ImplementationEntry,
    ProxyEntry,
)


def test_deploy_all(deployer):
    entries = deployer.deploy_all()
    ledger = OrderedDict((entry.logical_name, entry) for entry in entries)

    assert list(ledger) == ["TacoCoin", "Relayer", "VaultProxy", "VaultImpl", "VaultFactory"]
    for entry in entries:
        assert is_checksum_address(entry.address)
        assert int(entry.address, 16) != 0

    assert isinstance(ledger["TacoCoin"], ContractEntry)
    assert ledger["TacoCoin"].constructor_args == ["100000000000000000000"]
    assert ledger["TacoCoin"].contract_path == "contracts/TacoCoin.sol:TacoCoin"
    assert ledger["Relayer"].constructor_args == ["Taco-Vault"]

    assert isinstance(ledger["VaultProxy"], ProxyEntry)
    assert isinstance(ledger["VaultImpl"], ImplementationEntry)
    assert ledger["VaultImpl"].name == "Vault"
    assert ledger["VaultImpl"].constructor_args == []
    assert ledger["VaultProxy"].constructor_args == [ledger["VaultImpl"].address, "0x1234"]


def test_deploy_all_resolves_earlier_deployments(deployer, deployer_address):
    entries = {entry.logical_name: entry for entry in deployer.deploy_all()}
    deployed = dict(deployer.deployed)

    assert deployed["Vault"] == OrderedDict(
        _tacoCoin=entries["TacoCoin"].address,
        _admin=deployer_address,
        _rewardRatePerDay=1,
        _trustedForwarder=entries["Relayer"].address,
    )
    assert deployed["VaultFactory"] == OrderedDict(
        _vaultImplementation=entries["VaultImpl"].address,
        _trustedForwarder=entries["Relayer"].address,
    )
    assert entries["VaultFactory"].constructor_args == [
        entries["VaultImpl"].address,
        entries["Relayer"].address,
    ]


def test_deploy_then_load(deployer, deployment_ledger):
    deployment_ledger.record(deployer.deploy_all())

    ledger = deployment_ledger.load()
    for entry in ledger.values():
        assert is_checksum_address(entry.address)
        assert int(entry.address, 16) != 0
    assert isinstance(ledger["VaultProxy"], ProxyEntry)


@pytest.mark.parametrize(
    "error",
    [
        DeploymentFailed("Vault", "insufficient funds for gas * price + value"),
        InitializationFailed("Vault", "InvalidInitialization()"),
    ],
)
def test_failed_deployment_leaves_ledger_untouched(deployer, legacy_ledger_file, error):
    content = legacy_ledger_file.read_text()

    def deploy_behind_proxy(*args, **kwargs):
        raise error

    deployer.deploy_behind_proxy = deploy_behind_proxy
    with pytest.raises(DeploymentFailed):
        DeploymentLedger(legacy_ledger_file).record(deployer.deploy_all())

    assert legacy_ledger_file.read_text() == content
    # contracts before the failure were deployed, nothing after it
    assert [name for name, _ in deployer.deployed] == ["TacoCoin", "Relayer"]
