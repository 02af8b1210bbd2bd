import os
from pathlib import Path
from typing import Dict

import yaml
from ape import networks, project
from ape.contracts import ContractContainer

from vault_deployment.constants import OZ_DEPENDENCY_NAME, OZ_DEPENDENCY_VERSION
from vault_deployment.networks import get_chain_id, is_local_network


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def validate_config(config: Dict) -> None:
    """
    Checks the deployment section of a params file and, for live networks,
    that it targets the connected chain.
    """
    print("Validating parameters YAML...")

    deployment = config.get("deployment")
    if not deployment:
        raise ValueError("deployment is not set in params file.")

    contracts = config.get("contracts")
    if not contracts:
        raise ValueError("Parameters file missing 'contracts' field.")

    config_chain_id = deployment.get("chain_id")
    if config_chain_id is None or is_local_network():
        return

    if int(config_chain_id) != get_chain_id():
        raise ValueError(
            f"chain_id in params file ({config_chain_id}) does not match "
            f"chain_id of current network ({get_chain_id()})."
        )


def check_etherscan_plugin() -> None:
    """
    Checks that the ape-etherscan plugin is installed and that
    the appropriate API key environment variable is set.
    """
    if is_local_network():
        # unnecessary for local deployment
        return
    try:
        from ape_etherscan.utils import API_KEY_ENV_KEY_MAP
    except ImportError:
        raise ImportError("Please install the ape-etherscan plugin to use this script.")
    ecosystem_name = networks.provider.network.ecosystem.name
    explorer_envvar = API_KEY_ENV_KEY_MAP.get(ecosystem_name)
    api_key = os.environ.get(explorer_envvar)
    if not api_key:
        raise ValueError(f"{explorer_envvar} is not set.")


def default_contract_path(contract_name: str) -> str:
    return f"contracts/{contract_name}.sol:{contract_name}"


def get_oz_contract_container(contract: str) -> ContractContainer:
    dependency = project.dependencies[OZ_DEPENDENCY_NAME][OZ_DEPENDENCY_VERSION]
    return getattr(dependency, contract)


def _get_dependency_contract_container(contract: str) -> ContractContainer:
    for dependency_name, dependency_versions in project.dependencies.items():
        if len(dependency_versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        try:
            dependency_api = list(dependency_versions.values())[0]
            contract_container = getattr(dependency_api, contract)
            return contract_container
        except AttributeError:
            continue
    raise ValueError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str) -> ContractContainer:
    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies
        contract_container = _get_dependency_contract_container(contract)

    return contract_container
