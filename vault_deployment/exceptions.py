"""Errors raised by the deployment, upgrade and verification workflow."""


class LedgerDeploymentError(Exception):
    """Base exception for deployment workflow errors."""


class MissingLedger(LedgerDeploymentError, FileNotFoundError):
    """Raised when the deployment ledger file does not exist."""


class MalformedLedger(LedgerDeploymentError, ValueError):
    """Raised when the deployment ledger file cannot be interpreted."""


class ProxyNotFound(LedgerDeploymentError, ValueError):
    """Raised when a proxy entry is absent from the ledger or has no address."""


class SignerNotFound(LedgerDeploymentError, ValueError):
    """Raised when no signer exists at the requested index."""


class DeploymentFailed(LedgerDeploymentError, RuntimeError):
    """Raised when a deployment or upgrade transaction fails."""

    def __init__(self, contract_name: str, reason: str):
        self.contract_name = contract_name
        self.reason = reason
        super().__init__(f"{contract_name}: {reason}")


class InitializationFailed(DeploymentFailed):
    """Raised when the initializer of a proxied contract reverts."""


class VerificationFailed(LedgerDeploymentError):
    """Raised by a verification service when an entry could not be verified."""


class AlreadyVerified(VerificationFailed):
    """Raised by a verification service when the source is already published."""
