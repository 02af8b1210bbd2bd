import fcntl
import json
import os
from collections import OrderedDict
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Sequence, Type

from eth_typing import ChecksumAddress
from eth_utils import is_hex_address, to_checksum_address

from vault_deployment.constants import (
    DEFAULT_LEDGER_FILEPATH,
    IMPLEMENTATION_SUFFIX,
    PROXY_SUFFIX,
)
from vault_deployment.exceptions import MalformedLedger, MissingLedger

LogicalName = str

STANDARD_LEDGER_JSON_FORMAT = {"indent": 2, "separators": (",", ": ")}

ADDRESS_KEY = "address"
CONSTRUCTOR_ARGS_KEY = "constructorArgs"
CONTRACT_PATH_KEY = "contractPath"
NAME_KEY = "name"
KIND_KEY = "kind"


def contract_name_from_path(contract_path: str) -> str:
    """contracts/Vault.sol:Vault -> Vault"""
    return contract_path.split(":")[-1]


class LedgerEntry(NamedTuple):
    """Represents a single deployed contract recorded in the ledger."""

    logical_name: LogicalName
    address: ChecksumAddress
    constructor_args: Sequence[Any] = ()
    contract_path: Optional[str] = None
    name: Optional[str] = None
    # the object read from disk; written back as-is so untouched entries keep their fields
    raw: Optional[Dict[str, Any]] = None

    KIND = "contract"

    @property
    def contract_name(self) -> str:
        """Source contract name used to look up build artifacts."""
        if self.contract_path:
            return contract_name_from_path(self.contract_path)
        return self.name or self.logical_name

    def to_dict(self) -> Dict[str, Any]:
        if self.raw is not None:
            return OrderedDict(self.raw)
        data = OrderedDict()
        if self.name:
            data[NAME_KEY] = self.name
        data[ADDRESS_KEY] = self.address
        data[CONSTRUCTOR_ARGS_KEY] = list(self.constructor_args)
        if self.contract_path:
            data[CONTRACT_PATH_KEY] = self.contract_path
        data[KIND_KEY] = self.KIND
        return data


class ContractEntry(LedgerEntry):
    """A plain, non-upgradeable contract."""

    __slots__ = ()
    KIND = "contract"


class ProxyEntry(LedgerEntry):
    """The stable address of an upgradeable contract."""

    __slots__ = ()
    KIND = "proxy"


class ImplementationEntry(LedgerEntry):
    """The implementation a proxy currently delegates to."""

    __slots__ = ()
    KIND = "implementation"


ENTRY_KINDS: Dict[str, Type[LedgerEntry]] = {
    ContractEntry.KIND: ContractEntry,
    ProxyEntry.KIND: ProxyEntry,
    ImplementationEntry.KIND: ImplementationEntry,
}

Ledger = Dict[LogicalName, LedgerEntry]


def _infer_kind(logical_name: LogicalName) -> Type[LedgerEntry]:
    """
    Ledgers written by older tooling carry no kind; fall back to
    the naming convention used there (e.g. VaultProxy, VaultImpl).
    """
    if logical_name.endswith(PROXY_SUFFIX):
        return ProxyEntry
    if logical_name.endswith(IMPLEMENTATION_SUFFIX):
        return ImplementationEntry
    return ContractEntry


def entry_from_dict(logical_name: LogicalName, data: Any) -> LedgerEntry:
    if not isinstance(data, dict):
        raise MalformedLedger(f"Ledger entry '{logical_name}' is not an object.")

    address = data.get(ADDRESS_KEY)
    if not address or not is_hex_address(address):
        raise MalformedLedger(f"Ledger entry '{logical_name}' has an invalid address: {address}")

    kind = data.get(KIND_KEY)
    if kind is None:
        entry_class = _infer_kind(logical_name)
    else:
        try:
            entry_class = ENTRY_KINDS[kind]
        except KeyError:
            raise MalformedLedger(f"Ledger entry '{logical_name}' has an unknown kind '{kind}'.")

    constructor_args = data.get(CONSTRUCTOR_ARGS_KEY) or []
    if not isinstance(constructor_args, list):
        raise MalformedLedger(f"Constructor args of '{logical_name}' must be a list.")

    return entry_class(
        logical_name=logical_name,
        address=to_checksum_address(address),
        constructor_args=list(constructor_args),
        contract_path=data.get(CONTRACT_PATH_KEY),
        name=data.get(NAME_KEY),
        raw=OrderedDict(data),
    )


def upsert(ledger: Ledger, name: LogicalName, entry: LedgerEntry) -> Ledger:
    """
    Returns a new ledger with `entry` recorded under `name`.
    Other entries are left untouched; an existing entry under `name` is replaced entirely.
    """
    if entry.logical_name != name or entry.raw is not None:
        entry = entry._replace(logical_name=name, raw=None)
    updated = OrderedDict(ledger)
    updated[name] = entry
    return updated


class DeploymentLedger:
    """
    A JSON file mapping logical contract names to their deployed addresses and
    the metadata needed to verify them.
    """

    def __init__(self, filepath: Path = DEFAULT_LEDGER_FILEPATH):
        self.filepath = Path(filepath)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.filepath})"

    @property
    def lock_filepath(self) -> Path:
        return self.filepath.with_name(f"{self.filepath.name}.lock")

    def exists(self) -> bool:
        return self.filepath.exists()

    def load(self) -> Ledger:
        """Reads the ledger; raises MissingLedger if there is none yet."""
        if not self.filepath.exists():
            raise MissingLedger(
                f"{self.filepath} not found. Run the deploy script first."
            )
        try:
            with open(self.filepath, "r") as file:
                data = json.load(file, object_pairs_hook=OrderedDict)
        except json.JSONDecodeError as e:
            raise MalformedLedger(f"{self.filepath} is not valid JSON: {e}")

        if not isinstance(data, dict):
            raise MalformedLedger(f"{self.filepath} must contain a JSON object.")

        ledger = OrderedDict()
        for logical_name, entry_data in data.items():
            ledger[logical_name] = entry_from_dict(logical_name, entry_data)
        return ledger

    def load_or_empty(self) -> Ledger:
        try:
            return self.load()
        except MissingLedger:
            return OrderedDict()

    def save(self, ledger: Ledger) -> Path:
        """
        Writes the ledger to a temporary file and renames it over the existing one,
        so a crash mid-write leaves the previous file intact.
        """
        data = OrderedDict()
        for logical_name, entry in ledger.items():
            data[logical_name] = entry.to_dict()

        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        temp_filepath = self.filepath.with_name(f".{self.filepath.name}.tmp")
        try:
            with open(temp_filepath, "w") as file:
                json.dump(data, file, **STANDARD_LEDGER_JSON_FORMAT)
                file.write("\n")
                file.flush()
                os.fsync(file.fileno())
            os.replace(temp_filepath, self.filepath)
        finally:
            if temp_filepath.exists():
                temp_filepath.unlink()
        return self.filepath

    @contextmanager
    def lock(self) -> Iterator["DeploymentLedger"]:
        """Holds an advisory lock on the ledger for a read-modify-write cycle."""
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_filepath, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield self
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def update(self, name: LogicalName, entry: LedgerEntry) -> Ledger:
        """Records a single entry, keeping everything else already in the file."""
        return self.record([entry._replace(logical_name=name)])

    def record(self, entries: List[LedgerEntry]) -> Ledger:
        """Records entries under their logical names in a single locked write."""
        with self.lock():
            ledger = self.load_or_empty()
            for entry in entries:
                ledger = upsert(ledger, entry.logical_name, entry)
            self.save(ledger)
        return ledger
