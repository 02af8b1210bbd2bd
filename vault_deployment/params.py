import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

from ape import chain, networks
from ape.api import AccountAPI, ReceiptAPI
from ape.contracts.base import ContractContainer, ContractInstance, ContractTransactionHandler
from ape.exceptions import ApeException, ContractLogicError
from ape.utils import ZERO_ADDRESS
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from ethpm_types import MethodABI
from web3.auto import w3

from vault_deployment.confirm import _confirm_resolution, _continue
from vault_deployment.constants import (
    EIP1967_ADMIN_SLOT,
    EIP1967_IMPLEMENTATION_SLOT,
    IMPLEMENTATION_SUFFIX,
    PROXY_ADMIN_CONTRACT_NAME,
    PROXY_CONTRACT_NAME,
    PROXY_SUFFIX,
)
from vault_deployment.exceptions import DeploymentFailed, InitializationFailed
from vault_deployment.ledger import (
    ContractEntry,
    ImplementationEntry,
    LedgerEntry,
    ProxyEntry,
)
from vault_deployment.upgrade import Upgrader
from vault_deployment.utils import (
    _load_yaml,
    check_etherscan_plugin,
    default_contract_path,
    get_contract_container,
    get_oz_contract_container,
    validate_config,
)

CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"
CONTRACT_PROXY_PARAMETER_KEY = "proxy"
CONTRACT_TYPE_KEY = "contract"
CONTRACT_PATH_KEY = "contract_path"
DEFAULT_INITIALIZER = "initialize"


class DeploymentState:
    """Addresses known to the current run, used to resolve variables."""

    def __init__(
        self,
        deployer_address: Optional[ChecksumAddress] = None,
        addresses: Optional[Dict[str, ChecksumAddress]] = None,
    ):
        self.deployer_address = deployer_address
        self.addresses = addresses or dict()

    def record(self, logical_name: str, address: ChecksumAddress) -> None:
        self.addresses[logical_name] = to_checksum_address(address)


class VariableContext:
    def __init__(
        self,
        contract_names: List[str],
        contract_name: str,
        state: DeploymentState,
        constants: typing.Dict[str, Any] = None,
    ):
        self.contract_names = contract_names or list()
        self.contract_name = contract_name
        self.state = state
        self.constants = constants or dict()


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"

    @abstractmethod
    def resolve(self) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    def __init__(self, context: VariableContext):
        self.state = context.state

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is a special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self) -> Any:
        if self.state.deployer_address is None:
            return ZERO_ADDRESS
        return self.state.deployer_address


class Constant(Variable):
    def __init__(self, constant_name: str, context: VariableContext):
        try:
            self.constant_value = context.constants[constant_name]
        except KeyError:
            raise DeploymentParameters.Invalid(
                f"Constant '{constant_name}' not found in deployment file."
            )

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a deployment constant."""
        return value.isupper()

    def resolve(self) -> Any:
        return self.constant_value


class ContractName(Variable):
    def __init__(self, contract_name: str, context: VariableContext):
        if contract_name not in context.contract_names:
            raise DeploymentParameters.Invalid(f"Contract name {contract_name} not found")

        self.contract_name = contract_name
        self.state = context.state

    def resolve(self) -> Any:
        """Resolves to the address deployed earlier in this run, if any."""
        return self.state.addresses.get(self.contract_name, ZERO_ADDRESS)


def _resolve_param(value: Any) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, list):
        return [_resolve_param(v) for v in value]

    if isinstance(value, Variable):
        return value.resolve()

    return value  # literally a value


def _resolve_params(parameters: OrderedDict) -> OrderedDict:
    resolved_parameters = OrderedDict()
    for name, value in parameters.items():
        resolved_parameters[name] = _resolve_param(value)

    return resolved_parameters


def _variable_from_value(variable: Any, context: VariableContext) -> Variable:
    variable = variable[len(Variable.VARIABLE_PREFIX) :]
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount(context)
    elif Constant.is_constant(variable):
        return Constant(variable, context)
    else:
        return ContractName(variable, context)


def _process_raw_value(value: Any, variable_context: VariableContext) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, variable_context) for v in value]

    if Variable.is_variable(value):
        value = _variable_from_value(value, variable_context)

    return value


def _process_raw_values(values: Dict, variable_context: VariableContext) -> OrderedDict:
    if not isinstance(values, dict):
        raise DeploymentParameters.Invalid(
            f"Malformed parameters for {variable_context.contract_name}; expected a mapping."
        )
    processed_parameters = OrderedDict()
    for name, value in values.items():
        processed_parameters[name] = _process_raw_value(value, variable_context)

    return processed_parameters


def serialize_arg(value: Any) -> Any:
    """Converts a resolved argument into a JSON-friendly ledger value."""
    if isinstance(value, (list, tuple)):
        return [serialize_arg(v) for v in value]
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        # large integers are kept as strings, as block explorers expect
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


# Parameters


class ProxySpec(NamedTuple):
    name: str
    implementation: str
    initializer: str
    args: OrderedDict


class ContractSpec(NamedTuple):
    logical_name: str
    contract: str
    contract_path: Optional[str]
    constructor: OrderedDict
    proxy: Optional[ProxySpec] = None


class UpgradeSpec(NamedTuple):
    proxy: str
    implementation: str
    contract: str
    contract_path: str


def _split_contract_info(contract_info: Any) -> typing.Tuple[str, Dict]:
    if isinstance(contract_info, str):
        return contract_info, dict()
    if isinstance(contract_info, dict) and len(contract_info) == 1:
        contract_name = list(contract_info.keys())[0]  # only one entry
        return contract_name, contract_info[contract_name] or dict()
    raise DeploymentParameters.Invalid("Malformed contracts section in parameters YAML.")


def _proxy_names(logical_name: str, proxy_data: Dict) -> typing.Tuple[str, str]:
    proxy_name = proxy_data.get("name") or f"{logical_name}{PROXY_SUFFIX}"
    implementation_name = proxy_data.get("implementation") or f"{logical_name}{IMPLEMENTATION_SUFFIX}"
    return proxy_name, implementation_name


def _default_implementation_name(proxy_name: str, contracts: List[ContractSpec]) -> str:
    """The implementation recorded with the proxy at deploy time, else <base>Impl."""
    for spec in contracts:
        if spec.proxy and spec.proxy.name == proxy_name:
            return spec.proxy.implementation
    base_name = proxy_name
    if base_name.endswith(PROXY_SUFFIX):
        base_name = base_name[: -len(PROXY_SUFFIX)]
    return f"{base_name}{IMPLEMENTATION_SUFFIX}"


def _get_contract_names(config: typing.Dict) -> List[str]:
    """Returns every logical name a variable may refer to, including proxy names."""
    contract_names = list()
    for contract_info in config["contracts"]:
        logical_name, contract_data = _split_contract_info(contract_info)
        if logical_name in contract_names:
            raise DeploymentParameters.Invalid(f"Duplicate contract name '{logical_name}'.")
        contract_names.append(logical_name)
        if CONTRACT_PROXY_PARAMETER_KEY in contract_data:
            proxy_data = contract_data[CONTRACT_PROXY_PARAMETER_KEY] or dict()
            contract_names.extend(_proxy_names(logical_name, proxy_data))

    return contract_names


class DeploymentParameters:
    """Represents the contracts to deploy and upgrade, with their parameters."""

    class Invalid(ValueError):
        """Raised when the deployment parameters are invalid"""

    def __init__(
        self,
        contracts: List[ContractSpec],
        upgrades: Optional[List[UpgradeSpec]] = None,
        state: Optional[DeploymentState] = None,
        name: Optional[str] = None,
    ):
        self.contracts = contracts
        self.upgrades = upgrades or list()
        self.state = state or DeploymentState()
        self.name = name

    @classmethod
    def from_config(
        cls, config: typing.Dict, state: Optional[DeploymentState] = None
    ) -> "DeploymentParameters":
        print("Processing contract parameters...")
        if not config or not config.get("contracts"):
            raise cls.Invalid("Parameters file missing 'contracts' field.")
        state = state or DeploymentState()
        contract_names = _get_contract_names(config)
        constants = config.get("constants") or dict()

        contracts = list()
        for contract_info in config["contracts"]:
            logical_name, contract_data = _split_contract_info(contract_info)
            context = VariableContext(
                contract_names=contract_names,
                contract_name=logical_name,
                state=state,
                constants=constants,
            )
            contracts.append(cls._generate_contract_spec(logical_name, contract_data, context))

        upgrades = [
            cls._generate_upgrade_spec(upgrade_data, contracts)
            for upgrade_data in config.get("upgrades") or list()
        ]
        deployment_name = (config.get("deployment") or dict()).get("name")
        return cls(contracts=contracts, upgrades=upgrades, state=state, name=deployment_name)

    @classmethod
    def from_yaml(cls, filepath: Path, state: Optional[DeploymentState] = None):
        return cls.from_config(_load_yaml(filepath), state=state)

    @classmethod
    def _generate_contract_spec(
        cls, logical_name: str, contract_data: Dict, context: VariableContext
    ) -> ContractSpec:
        contract_type = contract_data.get(CONTRACT_TYPE_KEY, logical_name)
        constructor = _process_raw_values(
            contract_data.get(CONTRACT_CONSTRUCTOR_PARAMETER_KEY) or dict(), context
        )

        proxy = None
        if CONTRACT_PROXY_PARAMETER_KEY in contract_data:
            if constructor:
                raise cls.Invalid(
                    f"{logical_name} is upgradeable: initialize it through "
                    f"'{CONTRACT_PROXY_PARAMETER_KEY}.args', not a constructor."
                )
            proxy_data = contract_data[CONTRACT_PROXY_PARAMETER_KEY] or dict()
            proxy_name, implementation_name = _proxy_names(logical_name, proxy_data)
            proxy = ProxySpec(
                name=proxy_name,
                implementation=implementation_name,
                initializer=proxy_data.get("initializer", DEFAULT_INITIALIZER),
                args=_process_raw_values(proxy_data.get("args") or dict(), context),
            )

        return ContractSpec(
            logical_name=logical_name,
            contract=contract_type,
            contract_path=contract_data.get(CONTRACT_PATH_KEY),
            constructor=constructor,
            proxy=proxy,
        )

    @classmethod
    def _generate_upgrade_spec(cls, upgrade_data: Dict, contracts: List[ContractSpec]) -> UpgradeSpec:
        if not isinstance(upgrade_data, dict):
            raise cls.Invalid("Malformed upgrades section in parameters YAML.")
        try:
            proxy_name = upgrade_data["proxy"]
            contract_type = upgrade_data[CONTRACT_TYPE_KEY]
        except KeyError as e:
            raise cls.Invalid(f"Upgrade is missing the '{e.args[0]}' field.")

        implementation_name = upgrade_data.get("implementation") or _default_implementation_name(
            proxy_name, contracts
        )
        return UpgradeSpec(
            proxy=proxy_name,
            implementation=implementation_name,
            contract=contract_type,
            contract_path=upgrade_data.get(CONTRACT_PATH_KEY) or default_contract_path(contract_type),
        )

    def get_contract(self, logical_name: str) -> ContractSpec:
        for spec in self.contracts:
            if spec.logical_name == logical_name:
                return spec
        raise ValueError(f"Unexpected contract: {logical_name}")

    def get_upgrade(self, proxy_name: str) -> Optional[UpgradeSpec]:
        for spec in self.upgrades:
            if spec.proxy == proxy_name:
                return spec
        return None

    def resolve_upgrade(
        self,
        proxy_name: str,
        contract: Optional[str] = None,
        implementation: Optional[str] = None,
    ) -> UpgradeSpec:
        """
        Returns the upgrade of `proxy_name`, overridden by an explicit contract and/or
        implementation name. Without a contract, the parameters file must declare the upgrade.
        """
        configured = self.get_upgrade(proxy_name)
        if contract:
            if configured:
                implementation = implementation or configured.implementation
            return UpgradeSpec(
                proxy=proxy_name,
                implementation=implementation
                or _default_implementation_name(proxy_name, self.contracts),
                contract=contract,
                contract_path=default_contract_path(contract),
            )

        if configured is None:
            raise self.Invalid(f"No upgrade declared for {proxy_name}; name the new contract.")
        if implementation:
            configured = configured._replace(implementation=implementation)
        return configured

    def resolve_constructor(self, logical_name: str) -> OrderedDict:
        """Resolves the constructor parameters for a single contract."""
        return _resolve_params(self.get_contract(logical_name).constructor)

    def resolve_initializer(self, logical_name: str) -> OrderedDict:
        """Resolves the initializer parameters of an upgradeable contract."""
        proxy = self.get_contract(logical_name).proxy
        if not proxy:
            raise ValueError(f"Unexpected contract to proxy: {logical_name}")
        return _resolve_params(proxy.args)


# Validation


def _validate_method_args(
    method_abis: List[MethodABI], args: typing.Sequence[Any]
) -> typing.Dict[str, Any]:
    """Validates the transaction arguments against the function ABI."""
    if len(method_abis) == 0:
        raise ValueError("No method abis provided for validation of args")

    abis_matching_args_length = [abi for abi in method_abis if len(abi.inputs) == len(args)]
    for abi in abis_matching_args_length:
        named_args = {}
        for arg, abi_input in zip(args, abi.inputs):
            if not w3.is_encodable(abi_input.type, arg):
                break
            named_args[abi_input.name] = arg
        else:
            return named_args
    raise ValueError(
        f"Could not find ABI for '{method_abis[0].name}' with {len(args)} arg(s) and given type(s)"
    )


def _validate_constructor_abi_inputs(
    contract_name: str,
    abi_inputs: List[Any],
    resolved_parameters: OrderedDict,
) -> None:
    """Validates the constructor parameters against the constructor ABI."""
    if len(resolved_parameters) != len(abi_inputs):
        raise DeploymentParameters.Invalid(
            f"Constructor parameters length mismatch - "
            f"{contract_name} ABI requires {len(abi_inputs)}, Got {len(resolved_parameters)}."
        )
    if not abi_inputs:
        return  # no constructor parameters

    codex = enumerate(zip(abi_inputs, resolved_parameters.items()), start=0)
    for position, (abi_input, resolved_input) in codex:
        name, value = resolved_input
        if abi_input.name != name:
            raise DeploymentParameters.Invalid(
                f"{contract_name} constructor parameter '{name}' at position {position} does not "
                f"match the expected ABI name '{abi_input.name}'."
            )

        if not w3.is_encodable(abi_input.type, value):
            raise DeploymentParameters.Invalid(
                f"Constructor param name '{name}' at position {position} has a value '{value}' "
                f"whose type does not match expected ABI type '{abi_input.type}'"
            )


# Execution


class DeploymentResult(NamedTuple):
    address: ChecksumAddress
    tx_hash: str


class ProxyDeployment(NamedTuple):
    proxy_address: ChecksumAddress
    implementation_address: ChecksumAddress
    init_data: str
    tx_hash: str


def _read_address_slot(address: ChecksumAddress, slot: int) -> Optional[ChecksumAddress]:
    """Reads an address stored in a storage slot; None if the slot is empty."""
    value = bytes(chain.provider.get_storage(address, slot))
    if not any(value):
        return None
    return to_checksum_address(value[-20:])


class Transactor:
    """
    Represents an ape account plus validated/annotated transaction execution.
    """

    def __init__(self, account: AccountAPI, autosign: bool = False):
        self._account = account
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        self._autosign = autosign
        if hasattr(self._account, "set_autosign"):
            # only keyfile accounts prompt; test accounts always sign
            self._account.set_autosign(autosign)

    def get_account(self) -> AccountAPI:
        """Returns the transactor account."""
        return self._account

    def transact(self, method: ContractTransactionHandler, *args) -> ReceiptAPI:
        named_args = _validate_method_args(method_abis=method.abis, args=args)
        base_message = (
            f"\nTransacting {method.contract.contract_type.name}"
            f"[{method.contract.address[:10]}].{method}"
        )
        if named_args:
            pretty_args = "\n\t".join(f"{k}={v}" for k, v in named_args.items())
            message = f"{base_message} with arguments:\n\t{pretty_args}"
        else:
            message = f"{base_message} with no arguments"
        print(message)
        if not self._autosign:
            _continue()

        return method(*args, sender=self._account)


class Deployer(Transactor, Upgrader):
    """
    Represents an ape account plus the deployment parameters
    for a set of contracts, plus validated/annotated execution.
    """

    def __init__(
        self,
        parameters: DeploymentParameters,
        account: AccountAPI,
        autosign: bool = False,
        path: Optional[Path] = None,
    ):
        super().__init__(account, autosign)
        check_etherscan_plugin()
        self.path = path
        self.parameters = parameters
        self.parameters.state.deployer_address = account.address
        self._print_deployment_info()

        if not self._autosign:
            # Confirms the start of the deployment.
            _continue()

    @classmethod
    def from_yaml(cls, filepath: Path, *args, **kwargs) -> "Deployer":
        config = _load_yaml(filepath)
        validate_config(config)
        parameters = DeploymentParameters.from_config(config)
        return cls(parameters, *args, path=filepath, **kwargs)

    def _deploy_instance(
        self, container: ContractContainer, resolved_params: OrderedDict
    ) -> ContractInstance:
        contract_name = container.contract_type.name
        _validate_constructor_abi_inputs(
            contract_name=contract_name,
            abi_inputs=container.constructor.abi.inputs,
            resolved_parameters=resolved_params,
        )
        if not self._autosign:
            _confirm_resolution(resolved_params, contract_name)

        try:
            return self._account.deploy(container, *resolved_params.values())
        except ApeException as e:
            raise DeploymentFailed(contract_name, str(e)) from e

    def deploy(self, contract_name: str, constructor_args: OrderedDict) -> DeploymentResult:
        """Deploys a contract and waits for the deployment to be confirmed."""
        container = get_contract_container(contract_name)
        instance = self._deploy_instance(container, constructor_args)
        print(f"{contract_name} deployed at {instance.address}")
        return DeploymentResult(
            address=to_checksum_address(instance.address),
            tx_hash=instance.receipt.txn_hash,
        )

    def deploy_behind_proxy(
        self,
        implementation_name: str,
        init_args: OrderedDict,
        initializer: str = "initialize",
    ) -> ProxyDeployment:
        """
        Deploys an implementation, then an ERC1967 proxy pointing to it which
        calls the one-time initializer in its constructor.
        """
        container = get_contract_container(implementation_name)
        implementation = self._deploy_instance(container, OrderedDict())
        print(f"{implementation_name} implementation deployed at {implementation.address}")

        method = getattr(implementation, initializer)
        args = list(init_args.values())
        _validate_method_args(method_abis=method.abis, args=args)
        init_data = method.encode_input(*args)

        proxy_container = get_oz_contract_container(PROXY_CONTRACT_NAME)
        print(
            f"\nDeploying {PROXY_CONTRACT_NAME} for {implementation_name} "
            f"and calling {initializer}({', '.join(str(a) for a in args)})"
        )
        try:
            proxy = self._account.deploy(proxy_container, implementation.address, init_data)
        except ContractLogicError as e:
            raise InitializationFailed(implementation_name, str(e)) from e
        except ApeException as e:
            raise DeploymentFailed(PROXY_CONTRACT_NAME, str(e)) from e

        print(f"{implementation_name} proxy deployed at {proxy.address}")
        return ProxyDeployment(
            proxy_address=to_checksum_address(proxy.address),
            implementation_address=to_checksum_address(implementation.address),
            init_data="0x" + bytes(init_data).hex(),
            tx_hash=proxy.receipt.txn_hash,
        )

    def deploy_implementation(self, contract_name: str) -> ChecksumAddress:
        """Deploys an upgradeable implementation; initializers are not re-run."""
        return self.deploy(contract_name, OrderedDict()).address

    def upgrade_proxy(
        self,
        proxy_address: ChecksumAddress,
        implementation_address: ChecksumAddress,
        contract_name: str,
        data=b"",
    ) -> None:
        """Points the proxy to a new implementation of `contract_name`."""
        admin_address = _read_address_slot(proxy_address, EIP1967_ADMIN_SLOT)
        try:
            if admin_address:
                # transparent proxy; upgrades go through its ProxyAdmin
                proxy_admin = get_oz_contract_container(PROXY_ADMIN_CONTRACT_NAME).at(
                    admin_address
                )
                self.transact(
                    proxy_admin.upgradeAndCall, proxy_address, implementation_address, data
                )
            else:
                # UUPS proxy; the implementation exposes the upgrade function
                proxy = get_contract_container(contract_name).at(proxy_address)
                self.transact(proxy.upgradeToAndCall, implementation_address, data)
        except ApeException as e:
            raise DeploymentFailed(contract_name, str(e)) from e

    def get_implementation_address(self, proxy_address: ChecksumAddress) -> Optional[ChecksumAddress]:
        return _read_address_slot(proxy_address, EIP1967_IMPLEMENTATION_SLOT)

    def deploy_all(self) -> List[LedgerEntry]:
        """Deploys every configured contract, in order, returning their ledger entries."""
        entries = list()
        state = self.parameters.state
        for spec in self.parameters.contracts:
            if spec.proxy:
                init_args = self.parameters.resolve_initializer(spec.logical_name)
                result = self.deploy_behind_proxy(
                    implementation_name=spec.contract,
                    init_args=init_args,
                    initializer=spec.proxy.initializer,
                )
                state.record(spec.logical_name, result.proxy_address)
                state.record(spec.proxy.name, result.proxy_address)
                state.record(spec.proxy.implementation, result.implementation_address)
                entries.append(
                    ProxyEntry(
                        logical_name=spec.proxy.name,
                        address=result.proxy_address,
                        constructor_args=[result.implementation_address, result.init_data],
                        name=PROXY_CONTRACT_NAME,
                    )
                )
                entries.append(
                    ImplementationEntry(
                        logical_name=spec.proxy.implementation,
                        address=result.implementation_address,
                        constructor_args=[],
                        contract_path=spec.contract_path,
                        name=spec.contract,
                    )
                )
            else:
                constructor_args = self.parameters.resolve_constructor(spec.logical_name)
                result = self.deploy(spec.contract, constructor_args)
                state.record(spec.logical_name, result.address)
                entries.append(
                    ContractEntry(
                        logical_name=spec.logical_name,
                        address=result.address,
                        constructor_args=serialize_arg(list(constructor_args.values())),
                        contract_path=spec.contract_path,
                        name=spec.contract,
                    )
                )
        return entries

    def _print_deployment_info(self):
        print(
            f"Account: {self.get_account().address}",
            f"Config: {self.path}",
            f"Deployment: {self.parameters.name}",
            f"Ecosystem: {networks.provider.network.ecosystem.name}",
            f"Network: {networks.provider.network.name}",
            f"Chain ID: {networks.provider.network.chain_id}",
            f"Gas Price: {networks.provider.gas_price}",
            sep="\n",
        )
