"""Error taxonomy for the fulfiller.

Every error raised while scanning, decoding or resolving derives from
`FulfillerError`; the reconciliation loop turns them into a blocked result.
"""


class FulfillerError(Exception):
    """Base class for all fulfiller errors."""


class ConfigError(FulfillerError):
    """Invalid or incomplete configuration."""


class ProviderQueryFailed(FulfillerError):
    """An RPC call against the log provider failed."""

    def __init__(self, reason: str, from_block: int | None = None,
                 to_block: int | None = None):
        self.reason = reason
        self.from_block = from_block
        self.to_block = to_block
        if from_block is None:
            super().__init__(f"Rpc call failed: {reason}")
        else:
            super().__init__(
                f"Rpc call failed for blocks {from_block}-{to_block}: {reason}"
            )


class MalformedEvent(FulfillerError):
    """A log does not have the RandomnessRequest shape."""

    def __init__(self, reason: str, block: int | None = None,
                 log_index: int | None = None):
        self.reason = reason
        self.block = block
        self.log_index = log_index
        where = f" (block {block}, log {log_index})" if block is not None else ""
        super().__init__(f"Malformed RandomnessRequest{where}: {reason}")


class VerificationError(FulfillerError):
    """A beacon value failed randomness, round or signature checks."""


class UnreachableBeacon(FulfillerError):
    """Every configured drand endpoint failed.

    `errors` holds (endpoint, exception) pairs in attempt order; the message
    is the last recorded error so callers can tell causes apart.
    """

    def __init__(self, round: int | None, errors: list[tuple[str, Exception]]):
        self.round = round
        self.errors = list(errors)
        if self.errors:
            url, last = self.errors[-1]
            msg = f"{last} ({url})"
        else:
            msg = "no drand endpoints configured"
        super().__init__(msg)

    @property
    def last_error(self) -> Exception | None:
        return self.errors[-1][1] if self.errors else None


class BeaconResolutionFailed(FulfillerError):
    """Randomness for a specific request could not be resolved."""

    def __init__(self, request_id: int, round: int, cause: Exception):
        self.request_id = request_id
        self.round = round
        self.cause = cause
        super().__init__(
            f"Could not resolve round {round} for request {request_id}: {cause}"
        )
