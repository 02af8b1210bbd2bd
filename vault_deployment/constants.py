from pathlib import Path

import vault_deployment

#
# Filesystem
#

DEPLOYMENT_DIR = Path(vault_deployment.__file__).parent
CONSTRUCTOR_PARAMS_DIR = DEPLOYMENT_DIR / "constructor_params"
PROJECT_ROOT = DEPLOYMENT_DIR.parent

LEDGER_FILENAME = "deployedAddresses.json"
DEFAULT_LEDGER_FILEPATH = PROJECT_ROOT / LEDGER_FILENAME
DEFAULT_PARAMS_FILEPATH = CONSTRUCTOR_PARAMS_DIR / "taco-vault.yml"

#
# Networks
#

LOCAL_NETWORKS = ["local"]

#
# Contracts
#

OZ_DEPENDENCY_NAME = "openzeppelin"
OZ_DEPENDENCY_VERSION = "5.0.0"

PROXY_CONTRACT_NAME = "ERC1967Proxy"
PROXY_ADMIN_CONTRACT_NAME = "ProxyAdmin"

# Logical names used by the default Taco Vault deployment
VAULT_PROXY = "VaultProxy"
VAULT_IMPLEMENTATION = "VaultImpl"

# Suffixes used to infer the kind of legacy ledger entries
PROXY_SUFFIX = "Proxy"
IMPLEMENTATION_SUFFIX = "Impl"

# EIP1967 slots - https://eips.ethereum.org/EIPS/eip-1967
EIP1967_IMPLEMENTATION_SLOT = 0x360894A13BA1A3210667C828492DB98DCA3E2076CC3735A920A3CA505D382BBC
EIP1967_ADMIN_SLOT = 0xB53127684A568B3173AE13B9F8A6016E243E63B6E8EE1178D6A717850B5D6103

#
# Verification
#

ALREADY_VERIFIED_INDICATOR = "already verified"
