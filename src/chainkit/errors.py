"""Exception types."""


class Error(RuntimeError):
    """Base class for errors."""


class InvalidArgumentError(Error, ValueError):
    """Error raised when a sampling entry point is passed an invalid argument."""


class StepNotImplementedError(Error, NotImplementedError):
    """Error raised when no step function exists for a model and sampler pair."""


class BundleNotImplementedError(Error, NotImplementedError):
    """Error raised when no conversion is registered for a chain type."""


class ChainFailureError(Error):
    """Error raised when sampling one of the chains of an ensemble fails.

    The exception raised within the chain is attached as :code:`__cause__`.
    """

    def __init__(self, message: str, chain_index: int) -> None:
        super().__init__(message)
        self.chain_index = chain_index
