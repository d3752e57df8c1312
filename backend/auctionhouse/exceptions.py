"""Domain errors raised by the auction engine.

Every error is a ``ValueError`` so callers that only care about "the request
was invalid" can keep catching ``ValueError``.
"""


class AuctionError(ValueError):
    """Base class for all auction engine errors."""

    status_code = 400


class AuctionNotFound(AuctionError):
    status_code = 404


class WinNotFound(AuctionError):
    status_code = 404


class ItemNotFound(AuctionError):
    status_code = 404


class InvalidAuctionConfig(AuctionError):
    status_code = 400


class AuctionNotActive(AuctionError):
    status_code = 409


class BidTooLow(AuctionError):
    status_code = 409


class AuctionAlreadyEnded(AuctionError):
    status_code = 409


class CancelNotAllowed(AuctionError):
    status_code = 409


class AlreadyClaimed(AuctionError):
    status_code = 409


class WindowExpired(AuctionError):
    status_code = 409


class NotClaimed(AuctionError):
    status_code = 409


class AlreadyPaid(AuctionError):
    status_code = 409


class NotWinOwner(AuctionError):
    status_code = 403


class PaymentFailed(AuctionError):
    status_code = 402


class ItemLockConflict(AuctionError):
    """Fixed-price sale attempted while the item is held by an auction."""

    status_code = 409


class PolicyAlreadyApplied(AuctionError):
    """The no-sale policy already ran for this auction. Callers treat it as a no-op."""

    status_code = 409


class AlreadyHighestBidder(AuctionError):
    status_code = 409


class NotAuctionSeller(AuctionError):
    status_code = 403


class AuctionNotUnsold(AuctionError):
    """Manual relist/convert/unlist on an auction that is open or sold."""

    status_code = 409


class RelistLimitReached(AuctionError):
    status_code = 409
