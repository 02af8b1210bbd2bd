from ape import networks

from vault_deployment.constants import LOCAL_NETWORKS


def is_local_network() -> bool:
    """Returns True when connected to a local development network."""
    return networks.provider.network.name in LOCAL_NETWORKS


def get_chain_id() -> int:
    return networks.provider.network.chain_id
