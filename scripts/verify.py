#!/usr/bin/python3
import sys

import click
from ape.cli import ConnectedProviderCommand, network_option

from vault_deployment import workflow
from vault_deployment.options import ledger_filepath_option


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@ledger_filepath_option
@click.option(
    "--strict",
    help="Exit with a non-zero status when any contract fails verification",
    is_flag=True,
    default=False,
)
def cli(network, ledger_filepath, strict):
    """Verify every non-proxy contract recorded in the ledger."""
    status = workflow.verify(ledger_filepath=ledger_filepath, strict=strict)
    if status:
        sys.exit(status)


if __name__ == "__main__":
    cli()
