"""Error taxonomy for zap operations.

Every failure aborts the whole open/close invocation; the manager rolls the
execution environment back before the error reaches the caller.
"""

from __future__ import annotations


class ZapError(Exception):
    """Base class for every failure raised by the zap core."""


# -- validation: caught before any value moves ------------------------------


class ValidationError(ZapError):
    pass


class InvalidRange(ValidationError):
    def __init__(self, tick_lower: int, tick_upper: int, reason: str):
        self.tick_lower = int(tick_lower)
        self.tick_upper = int(tick_upper)
        self.reason = reason
        super().__init__(f"Invalid tick range [{tick_lower}, {tick_upper}]: {reason}")


class InvalidRouteShape(ValidationError):
    pass


class ZeroAmount(ValidationError):
    pass


class ExpiredDeadline(ValidationError):
    def __init__(self, deadline: int, now: int):
        self.deadline = int(deadline)
        self.now = int(now)
        super().__init__(f"Deadline {deadline} expired (now={now})")


class ReentrantCall(ValidationError):
    pass


class StakingUnavailable(ValidationError):
    pass


# -- authorization: identity mismatch ---------------------------------------


class AuthorizationError(ZapError):
    pass


class Unauthorized(AuthorizationError):
    pass


class NotBeneficialOwner(Unauthorized):
    def __init__(self, position_id: int, caller: str, owner: str | None):
        self.position_id = int(position_id)
        self.caller = caller
        self.owner = owner
        super().__init__(
            f"Caller {caller} is not the beneficial owner of staked position "
            f"{position_id} (owner={owner})"
        )


# -- configuration: the process is not set up for the call ------------------


class ConfigurationError(ZapError):
    pass


class WalletNotConfigured(ConfigurationError):
    def __init__(self, adapter: str, method: str):
        self.adapter = adapter
        self.method = method
        super().__init__(f"{adapter}.{method}: no wallet or signer configured")


# -- market: external state cannot satisfy the request ----------------------


class MarketError(ZapError):
    pass


class PriceUnavailable(MarketError):
    def __init__(self, asset: str, connectors_tried: int):
        self.asset = asset
        self.connectors_tried = int(connectors_tried)
        super().__init__(
            f"No oracle price for {asset} after {connectors_tried} connector(s)"
        )


class NoRoute(MarketError):
    def __init__(self, token_in: str, token_out: str):
        self.token_in = token_in
        self.token_out = token_out
        super().__init__(f"No swap route from {token_in} to {token_out}")


class InsufficientOutput(MarketError):
    def __init__(self, amount_out: int, min_out: int, what: str = "swap"):
        self.amount_out = int(amount_out)
        self.min_out = int(min_out)
        super().__init__(f"Insufficient {what} output: got {amount_out}, need {min_out}")


class InsufficientFunds(MarketError):
    pass


# -- bounds: argument outside the math domain -------------------------------


class BoundsError(ZapError):
    pass


class TickOutOfRange(BoundsError):
    def __init__(self, value: int, lower: int, upper: int):
        self.value = int(value)
        super().__init__(f"{value} out of range [{lower}, {upper}]")
