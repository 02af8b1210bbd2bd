"""
The deploy, upgrade and verify runs behind the scripts under `scripts/`.
Each returns the exit status of the run.
"""

from pathlib import Path
from typing import Optional

import click

from vault_deployment.confirm import _confirm_upgrade
from vault_deployment.exceptions import LedgerDeploymentError
from vault_deployment.ledger import DeploymentLedger
from vault_deployment.params import Deployer
from vault_deployment.signers import get_deployer
from vault_deployment.upgrade import get_proxy_address, upgrade
from vault_deployment.utils import check_etherscan_plugin
from vault_deployment.verify import (
    ExplorerVerificationService,
    VerificationService,
    print_report,
    verify_all,
)


def deploy(
    params_filepath: Path,
    ledger_filepath: Path,
    deployer_index: int = 0,
    autosign: bool = False,
) -> int:
    ledger = DeploymentLedger(ledger_filepath)
    try:
        account = get_deployer(deployer_index)
        deployer = Deployer.from_yaml(params_filepath, account=account, autosign=autosign)
        entries = deployer.deploy_all()
    except (LedgerDeploymentError, ValueError) as e:
        click.secho(f"Deployment failed: {e}", fg="red")
        return 1

    ledger.record(entries)
    for entry in entries:
        click.secho(f"{entry.logical_name}: {entry.address}", fg="cyan")
    click.secho(f"Deployment data saved to {ledger.filepath}", fg="green")
    print("Run the verify script to verify the contracts.")
    return 0


def upgrade_proxy(
    params_filepath: Path,
    ledger_filepath: Path,
    proxy: str,
    contract: Optional[str] = None,
    implementation: Optional[str] = None,
    deployer_index: int = 0,
    autosign: bool = False,
) -> int:
    """
    Upgrades the proxy recorded under `proxy`. The ledger and the proxy entry are
    checked before a signer is loaded, so a bad ledger never reaches the network.
    """
    ledger = DeploymentLedger(ledger_filepath)
    try:
        with ledger.lock():
            current = ledger.load()
            proxy_address = get_proxy_address(current, proxy)

            account = get_deployer(deployer_index)
            deployer = Deployer.from_yaml(params_filepath, account=account, autosign=autosign)
            spec = deployer.parameters.resolve_upgrade(proxy, contract, implementation)
            if not autosign:
                _confirm_upgrade(proxy, proxy_address, spec.contract)

            updated = upgrade(
                ledger=current,
                proxy_name=spec.proxy,
                contract_name=spec.contract,
                upgrader=deployer,
                implementation_name=spec.implementation,
                contract_path=spec.contract_path,
            )
            ledger.save(updated)
    except (LedgerDeploymentError, ValueError) as e:
        click.secho(f"Upgrade failed: {e}", fg="red")
        return 1

    click.secho(f"Recorded {spec.implementation} in {ledger.filepath}.", fg="green")
    return 0


def verify(
    ledger_filepath: Path,
    strict: bool = False,
    service: Optional[VerificationService] = None,
) -> int:
    """Partial failures exit 0 unless `strict`; an unreadable ledger always exits 1."""
    try:
        ledger = DeploymentLedger(ledger_filepath).load()
        if service is None:
            check_etherscan_plugin()
            service = ExplorerVerificationService()
    except (LedgerDeploymentError, ImportError, ValueError) as e:
        click.secho(f"Verification script failed: {e}", fg="red")
        return 1

    report = verify_all(ledger, service)
    print_report(report)
    if strict and not report.ok:
        return 1
    return 0
