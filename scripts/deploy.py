#!/usr/bin/python3
import sys

import click
from ape.cli import ConnectedProviderCommand, network_option

from vault_deployment import workflow
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
def cli(network, params_filepath, ledger_filepath, deployer_index, autosign):
    """Deploy the contracts of a parameters file and record them in the ledger."""
    print(f"Deploying to network: {network}")
    status = workflow.deploy(
        params_filepath=params_filepath,
        ledger_filepath=ledger_filepath,
        deployer_index=deployer_index,
        autosign=autosign,
    )
    if status:
        sys.exit(status)


if __name__ == "__main__":
    cli()
