from typing import List

from ape import accounts
from ape.api import AccountAPI

from vault_deployment.exceptions import SignerNotFound
from vault_deployment.networks import is_local_network


def get_signers() -> List[AccountAPI]:
    """
    Returns the ordered list of signers available on the connected network.
    Test accounts are used on local networks, otherwise the accounts stored in
    ape's keyfile container, ordered by alias.
    """
    if is_local_network():
        return list(accounts.test_accounts)
    return [accounts.load(alias) for alias in sorted(accounts.aliases)]


def select_signer(signers: List[AccountAPI], index: int) -> AccountAPI:
    if index < 0:
        raise SignerNotFound(f"Signer index must be non-negative, got {index}.")
    try:
        return signers[index]
    except IndexError:
        raise SignerNotFound(
            f"No signer at index {index}; {len(signers)} signer(s) available."
        )


def get_deployer(index: int = 0) -> AccountAPI:
    """Selects the deployer account by its position in the signer list."""
    deployer = select_signer(get_signers(), index)
    print(f"Deployer account is: {deployer.address}")
    return deployer
