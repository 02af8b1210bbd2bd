#!/usr/bin/python3
import sys

import click
from ape.cli import ConnectedProviderCommand, network_option

from vault_deployment import workflow
from vault_deployment.constants import VAULT_PROXY
from vault_deployment.options import (
    autosign_option,
    deployer_index_option,
    ledger_filepath_option,
    params_filepath_option,
)


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@params_filepath_option
@ledger_filepath_option
@deployer_index_option
@autosign_option
@click.option(
    "--proxy",
    help="Ledger name of the proxy to upgrade",
    type=click.STRING,
    default=VAULT_PROXY,
    show_default=True,
)
@click.option(
    "--contract",
    "-c",
    help="Contract of the new implementation; defaults to the upgrade in the parameters file",
    type=click.STRING,
    required=False,
)
@click.option(
    "--implementation",
    help="Ledger name under which the new implementation is recorded",
    type=click.STRING,
    required=False,
)
def cli(
    network,
    params_filepath,
    ledger_filepath,
    deployer_index,
    autosign,
    proxy,
    contract,
    implementation,
):
    """Upgrade a proxy recorded in the ledger to a new implementation."""
    status = workflow.upgrade_proxy(
        params_filepath=params_filepath,
        ledger_filepath=ledger_filepath,
        proxy=proxy,
        contract=contract,
        implementation=implementation,
        deployer_index=deployer_index,
        autosign=autosign,
    )
    if status:
        sys.exit(status)


if __name__ == "__main__":
    cli()
