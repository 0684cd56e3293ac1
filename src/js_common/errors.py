"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth/Operator
  2xxx: Wallet / ledger
  3xxx: Party directory
  4xxx: Order lifecycle + broadcast coordination
  9xxx: System / external collaborators
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth/Operator ---

class UsernameExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Username already exists", 409)


class EmailExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "Email already exists", 409)


class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid username or password", 401)


class AccountDisabledError(AppError):
    def __init__(self) -> None:
        super().__init__(1004, "Account is disabled", 403)


class InvalidRefreshTokenError(AppError):
    def __init__(self) -> None:
        super().__init__(1005, "Refresh token is invalid or expired", 401)


class AdminRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1006, "Admin privileges required", 403)


class InvalidWebhookTokenError(AppError):
    def __init__(self) -> None:
        super().__init__(1007, "Invalid webhook token", 401)


# --- 2xxx: Wallet / ledger ---

class LedgerInvariantViolationError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2101, f"Ledger invariant violated: {detail}", 500)


class WalletNotFoundError(AppError):
    def __init__(self, party_id: str) -> None:
        super().__init__(2102, f"Wallet not found for party {party_id}", 404)


# --- 3xxx: Party directory ---

class PartyNotFoundError(AppError):
    def __init__(self, ref: str) -> None:
        super().__init__(3001, f"Party not found: {ref}", 404)


class PhoneExistsError(AppError):
    def __init__(self, phone: str) -> None:
        super().__init__(3002, f"Phone already registered: {phone}", 409)


class InvalidLocationError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3003, f"Invalid location: {detail}", 422)


class PartyRoleMismatchError(AppError):
    def __init__(self, party_id: str, expected: str) -> None:
        super().__init__(3004, f"Party {party_id} is not a {expected}", 422)


# --- 4xxx: Order lifecycle + broadcast coordination ---

class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4004, f"Order not found: {order_id}", 404)


class OrderAccessDeniedError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4005, f"Party is not involved in order {order_id}", 403)


class InvalidDeliveryTokenError(AppError):
    def __init__(self) -> None:
        super().__init__(4006, "Delivery token does not match", 403)


class AmbiguousOrderReferenceError(AppError):
    def __init__(self, ref: str) -> None:
        super().__init__(4007, f"Order reference is ambiguous: {ref}", 422)


class InvalidTransitionError(AppError):
    def __init__(self, order_id: str, current: str, target: str) -> None:
        super().__init__(
            4101, f"Order {order_id} cannot move from {current} to {target}", 409
        )
        self.order_id = order_id
        self.current = current
        self.target = target


class CapacityExceededError(AppError):
    def __init__(self, party_id: str, detail: str) -> None:
        super().__init__(4102, f"Party {party_id} cannot take more work: {detail}", 409)


class AlreadyResolvedError(AppError):
    def __init__(self, order_id: str, detail: str = "job already taken") -> None:
        super().__init__(4104, f"Order {order_id}: {detail}", 409)
        self.order_id = order_id


class BroadcastNotFoundError(AppError):
    def __init__(self, order_id: str, candidate_id: str) -> None:
        super().__init__(
            4105, f"No offer for order {order_id} was sent to {candidate_id}", 404
        )


# --- 9xxx: System ---

class RateLimitError(AppError):
    def __init__(self) -> None:
        super().__init__(9001, "Rate limit exceeded", 429)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class NotificationDeliveryFailedError(AppError):
    def __init__(self, phone: str, detail: str) -> None:
        super().__init__(9101, f"Notification to {phone} failed: {detail}", 502)
        self.phone = phone


class VisionUnavailableError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9102, f"Vision verifier unavailable: {detail}", 502)
