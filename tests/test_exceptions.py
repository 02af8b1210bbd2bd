import pytest

from vault_deployment.exceptions import (
    AlreadyVerified,
    DeploymentFailed,
    InitializationFailed,
    LedgerDeploymentError,
    MalformedLedger,
    MissingLedger,
    ProxyNotFound,
    SignerNotFound,
    VerificationFailed,
)


@pytest.mark.parametrize(
    "error, base",
    [
        (MissingLedger("deployedAddresses.json"), FileNotFoundError),
        (MalformedLedger("not an object"), ValueError),
        (ProxyNotFound("VaultProxy"), ValueError),
        (SignerNotFound("index 5"), ValueError),
        (DeploymentFailed("TacoCoin", "nonce too low"), RuntimeError),
        (InitializationFailed("Vault", "InvalidInitialization()"), DeploymentFailed),
        (AlreadyVerified("TacoCoin"), VerificationFailed),
    ],
)
def test_exception_hierarchy(error, base):
    assert isinstance(error, LedgerDeploymentError)
    with pytest.raises(base):
        raise error


def test_deployment_failed_carries_reason():
    error = InitializationFailed("Vault", "execution reverted: InvalidInitialization()")
    assert error.contract_name == "Vault"
    assert error.reason == "execution reverted: InvalidInitialization()"
    assert str(error) == "Vault: execution reverted: InvalidInitialization()"
