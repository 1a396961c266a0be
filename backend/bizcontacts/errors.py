"""Exception types shared across the pipeline."""


class PipelineError(Exception):
    """Base class for pipeline errors."""


class ContractError(PipelineError):
    """A caller broke a required contract, e.g. a missing location id at insert time."""


class InvalidTransition(PipelineError):
    """A job status change that the state machine does not allow."""

    def __init__(self, kind: str, current, target):
        self.kind = kind
        self.current = current
        self.target = target
        super().__init__(f"{kind}: cannot move from {current.value} to {target.value}")


class RegistryError(PipelineError):
    """The business registry returned something we could not use."""


class RegistryRateLimitError(RegistryError):
    """The registry kept answering 429 after all retries."""


class InvalidRegistryResponse(RegistryError):
    """The registry response body matched none of the known envelope shapes."""


class PageFetchError(PipelineError):
    """One page could not be fetched (timeout, DNS, connection). The crawl continues."""
