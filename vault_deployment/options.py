from pathlib import Path

import click

from vault_deployment.constants import DEFAULT_LEDGER_FILEPATH, DEFAULT_PARAMS_FILEPATH
from vault_deployment.types import MinInt

params_filepath_option = click.option(
    "--params-filepath",
    "-p",
    help="Deployment parameters YAML",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    default=DEFAULT_PARAMS_FILEPATH,
    show_default=True,
)

ledger_filepath_option = click.option(
    "--ledger-filepath",
    "-l",
    help="Deployment ledger JSON file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_LEDGER_FILEPATH,
    show_default=True,
)

deployer_index_option = click.option(
    "--deployer-index",
    "-i",
    help="Index of the deployer in the list of available signers",
    type=MinInt(0),
    default=0,
    show_default=True,
)

autosign_option = click.option(
    "--autosign",
    help="Sign transactions without asking for confirmation",
    is_flag=True,
    default=False,
)
