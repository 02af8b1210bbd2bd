from typing import Any, List, NamedTuple, Optional, Sequence, Tuple

import click
from ape import networks
from eth_typing import ChecksumAddress
from web3.auto import w3

from vault_deployment.constants import ALREADY_VERIFIED_INDICATOR
from vault_deployment.exceptions import AlreadyVerified, VerificationFailed
from vault_deployment.ledger import Ledger, LedgerEntry, ProxyEntry, contract_name_from_path
from vault_deployment.utils import get_contract_container


class VerificationReport(NamedTuple):
    verified: List[str]
    already_verified: List[str]
    failed: List[Tuple[str, str]]
    skipped: List[str]

    @property
    def ok(self) -> bool:
        return not self.failed


class VerificationService:
    """A source-verification backend, such as a block explorer."""

    def verify(
        self,
        address: ChecksumAddress,
        constructor_args: Sequence[Any],
        contract_path: Optional[str] = None,
        contract_name: Optional[str] = None,
    ) -> None:
        """Submits a contract for verification; raises VerificationFailed when rejected."""
        raise NotImplementedError


def is_already_verified(error: Exception) -> bool:
    if isinstance(error, AlreadyVerified):
        return True
    return ALREADY_VERIFIED_INDICATOR in str(error).lower()


def _coerce_arg(abi_type: str, value: Any) -> Any:
    """Ledgers store integers as strings; turn them back into ints for ABI checks."""
    if isinstance(value, str) and abi_type.startswith(("uint", "int")) and "[" not in abi_type:
        try:
            return int(value, 0)
        except ValueError:
            return value
    return value


class ExplorerVerificationService(VerificationService):
    """Publishes contract sources through the explorer plugin of the connected network."""

    def __init__(self, explorer=None, get_container=get_contract_container):
        self._explorer = explorer
        self._get_container = get_container

    @property
    def explorer(self):
        if self._explorer is None:
            self._explorer = networks.provider.network.explorer
            if self._explorer is None:
                raise VerificationFailed(
                    f"No explorer configured for {networks.provider.network.name}."
                )
        return self._explorer

    def verify(self, address, constructor_args, contract_path=None, contract_name=None):
        contract_name = contract_name or contract_name_from_path(contract_path or "")
        # the etherscan plugin only logs resubmissions, so ask for the published source first
        if self.explorer.get_contract_type(address):
            raise AlreadyVerified(f"{contract_name} at {address} is already verified.")

        try:
            container = self._get_container(contract_name)
        except ValueError as e:
            raise VerificationFailed(str(e))

        abi_inputs = container.constructor.abi.inputs
        if len(abi_inputs) != len(constructor_args):
            raise VerificationFailed(
                f"{contract_name} constructor takes {len(abi_inputs)} argument(s), "
                f"{len(constructor_args)} recorded."
            )
        for abi_input, value in zip(abi_inputs, constructor_args):
            if not w3.is_encodable(abi_input.type, _coerce_arg(abi_input.type, value)):
                raise VerificationFailed(
                    f"Recorded argument '{value}' does not match constructor "
                    f"parameter '{abi_input.name}' of type '{abi_input.type}'."
                )

        # binds the contract type to the address so the explorer knows which source to publish
        container.at(address)
        self.explorer.publish_contract(address)


def verify_entry(entry: LedgerEntry, service: VerificationService) -> None:
    service.verify(
        address=entry.address,
        constructor_args=entry.constructor_args,
        contract_path=entry.contract_path,
        contract_name=entry.contract_name,
    )


def verify_all(ledger: Ledger, service: VerificationService) -> VerificationReport:
    """
    Submits every non-proxy ledger entry for verification.
    Failures are collected per entry and never stop the remaining verifications.
    """
    report = VerificationReport(verified=[], already_verified=[], failed=[], skipped=[])
    for logical_name, entry in ledger.items():
        if isinstance(entry, ProxyEntry):
            # proxies are recognized by explorers from their standard bytecode
            report.skipped.append(logical_name)
            continue

        print(f"Verifying {logical_name} at {entry.address}...")
        try:
            verify_entry(entry, service)
        except Exception as e:
            if is_already_verified(e):
                click.secho(f"Already verified: {logical_name}", fg="yellow")
                report.already_verified.append(logical_name)
            else:
                click.secho(f"Failed to verify {logical_name}: {e}", fg="red")
                report.failed.append((logical_name, str(e)))
            continue

        click.secho(f"Verified: {logical_name}", fg="green")
        report.verified.append(logical_name)

    return report


def print_report(report: VerificationReport) -> None:
    click.secho(
        f"\n{len(report.verified)} verified, "
        f"{len(report.already_verified)} already verified, "
        f"{len(report.failed)} failed, "
        f"{len(report.skipped)} proxies skipped",
        fg="green" if report.ok else "red",
    )
    for logical_name, reason in report.failed:
        click.secho(f"    {logical_name}: {reason}", fg="red")
