"""Typed pool errors.

Every failure inside a pool invocation raises one of these. The facade
rolls storage back before the error reaches the caller, so the kind alone
tells the caller whether to retry with a different amount, wait for a price
update, or give up.
"""


class PoolError(Exception):
    """Base class for all pool errors."""

    code: int = 1

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)


class InternalError(PoolError):
    code = 1


class AlreadyInitializedError(PoolError):
    code = 3


class NotAuthorizedError(PoolError):
    code = 4


class NegativeAmountError(PoolError):
    code = 8


class BalanceError(PoolError):
    code = 10


class ArithmeticOverflowError(PoolError, OverflowError):
    """Fixed-point arithmetic left the i128 range or divided by zero."""

    code = 12


class BadRequestError(PoolError):
    code = 1200


class InvalidPoolInitArgsError(PoolError):
    code = 1201


class InvalidReserveMetadataError(PoolError):
    code = 1202


class InitNotUnlockedError(PoolError):
    """A queued reserve configuration is still inside its timelock."""

    code = 1203


class InvalidHealthFactorError(PoolError):
    code = 1205


class InvalidPoolStatusError(PoolError):
    code = 1206


class InvalidUtilRateError(PoolError):
    code = 1207


class MaxPositionsExceededError(PoolError):
    code = 1208


class ReserveNotFoundError(PoolError):
    code = 1209


class StalePriceError(PoolError):
    code = 1210


class InvalidLiquidationError(PoolError):
    code = 1211


class AuctionInProgressError(PoolError):
    code = 1212


class InvalidLiqTooLargeError(PoolError):
    code = 1213


class InvalidLiqTooSmallError(PoolError):
    code = 1214


class InterestTooSmallError(PoolError):
    code = 1215


class NoAuctionExistsError(PoolError):
    code = 1220


class AuctionExpiredError(PoolError):
    code = 1221


class ReentrancyError(PoolError):
    """A collaborator tried to call back into the pool mid-invocation."""

    code = 1222
