import sys
from collections import OrderedDict

from ape.utils import ZERO_ADDRESS


def _abort() -> None:
    print("Aborting, the deployment ledger was not changed.")
    sys.exit(1)


def _ask(question: str) -> None:
    """Aborts unless the answer is yes; an empty answer counts as yes."""
    answer = input(f"{question} Y/N? ")
    if answer.lower().strip() == "n":
        _abort()


def _continue() -> None:
    _ask("Continue")


def _confirm_resolution(resolved_params: OrderedDict, contract_name: str) -> None:
    """Shows the resolved constructor or initializer arguments before sending the transaction."""
    if not resolved_params:
        print(f"\n(i) {contract_name} takes no arguments")
    else:
        print(f"\nArguments for {contract_name}")
        for name, resolved_value in resolved_params.items():
            print(f"\t{name}={resolved_value}")
    _ask(f"Deploy {contract_name}")

    zero_params = [name for name, value in resolved_params.items() if value == ZERO_ADDRESS]
    if zero_params:
        _ask(f"{', '.join(zero_params)} resolved to the zero address; deploy anyway")


def _confirm_upgrade(proxy_name: str, proxy_address: str, contract_name: str) -> None:
    print(f"\n{proxy_name} at {proxy_address} will delegate to a new {contract_name}")
    _ask(f"Upgrade {proxy_name}")

