import click
from click.testing import CliRunner

from vault_deployment.constants import DEFAULT_LEDGER_FILEPATH
from vault_deployment.options import deployer_index_option, ledger_filepath_option


@click.command()
@deployer_index_option
@ledger_filepath_option
def show(deployer_index, ledger_filepath):
    click.echo(f"{deployer_index} {ledger_filepath}")


def test_defaults():
    result = CliRunner().invoke(show, [])
    assert result.exit_code == 0
    assert result.output.strip() == f"0 {DEFAULT_LEDGER_FILEPATH}"


def test_deployer_index(tmp_path):
    ledger_filepath = tmp_path / "ledger.json"
    result = CliRunner().invoke(show, ["-i", "2", "--ledger-filepath", str(ledger_filepath)])
    assert result.exit_code == 0
    assert result.output.strip() == f"2 {ledger_filepath}"


def test_deployer_index_must_not_be_negative():
    result = CliRunner().invoke(show, ["--deployer-index=-1"])
    assert result.exit_code == 2
    assert "less than the minimum allowed value of 0" in result.output


def test_deployer_index_must_be_an_integer():
    result = CliRunner().invoke(show, ["--deployer-index", "first"])
    assert result.exit_code == 2
    assert "first is not a valid integer" in result.output
