"""Domain errors raised by the session and order services.

Every error carries a machine-readable ``kind`` and the HTTP status the API
layer answers with. Routes let these propagate; ``main.py`` renders them.
"""

from typing import Optional


class CafeError(Exception):
    """Base class for all domain errors."""

    kind = "error"
    status_code = 400

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return cls.kind.replace("_", " ").capitalize()


# ===== Session errors =====

class AuthenticationError(CafeError):
    """Any failure to establish who the caller is."""

    kind = "authentication_failed"
    status_code = 401


class InvalidCredentials(AuthenticationError):
    kind = "invalid_credentials"

    @classmethod
    def default_message(cls) -> str:
        return "Invalid email or password"


class AccountInactive(AuthenticationError):
    kind = "account_inactive"

    @classmethod
    def default_message(cls) -> str:
        return "Account is deactivated. Please contact administrator."


class AccountLocked(AuthenticationError):
    kind = "account_locked"
    status_code = 423

    @classmethod
    def default_message(cls) -> str:
        return "Account is temporarily locked. Please try again later."


class EmailUnverified(AuthenticationError):
    kind = "email_unverified"
    status_code = 403

    @classmethod
    def default_message(cls) -> str:
        return "Please verify your email address before logging in."


class TooManyLoginAttempts(AuthenticationError):
    kind = "too_many_attempts"
    status_code = 429

    def __init__(self, retry_after_seconds: int, message: Optional[str] = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message or "Too many authentication attempts, please try again later"
        )


class TokenMissing(AuthenticationError):
    kind = "token_missing"

    @classmethod
    def default_message(cls) -> str:
        return "Access denied. No token provided."


class TokenExpired(AuthenticationError):
    kind = "token_expired"

    @classmethod
    def default_message(cls) -> str:
        return "Token has expired"


class TokenInvalid(AuthenticationError):
    kind = "token_invalid"

    @classmethod
    def default_message(cls) -> str:
        return "Token is invalid"


class StaffNotFound(AuthenticationError):
    kind = "staff_not_found"

    @classmethod
    def default_message(cls) -> str:
        return "Token is invalid. Staff member not found."


class RefreshInvalid(AuthenticationError):
    kind = "refresh_invalid"

    @classmethod
    def default_message(cls) -> str:
        return "Invalid refresh token"


class RefreshExpired(AuthenticationError):
    kind = "refresh_expired"

    @classmethod
    def default_message(cls) -> str:
        return "Refresh token has expired"


# ===== Lifecycle errors =====

class LifecycleError(CafeError):
    """Failures of order placement or order transitions."""


class OrderNotFound(LifecycleError):
    kind = "order_not_found"
    status_code = 404

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class TableNotFound(LifecycleError):
    kind = "table_not_found"
    status_code = 404

    def __init__(self, table_number: int):
        self.table_number = table_number
        super().__init__(f"Table {table_number} does not exist or is inactive")


class EmptyOrder(LifecycleError):
    kind = "empty_order"
    status_code = 422

    @classmethod
    def default_message(cls) -> str:
        return "Order must contain at least one item"


class InvalidQuantity(LifecycleError):
    kind = "invalid_quantity"
    status_code = 422

    def __init__(self, menu_item_id: int, quantity: int):
        self.menu_item_id = menu_item_id
        self.quantity = quantity
        super().__init__(f"Quantity for item {menu_item_id} must be at least 1, got {quantity}")


class InvalidPhone(LifecycleError):
    kind = "invalid_phone"
    status_code = 422

    @classmethod
    def default_message(cls) -> str:
        return "Please provide a valid phone number (at least 10 digits)"


class MenuItemUnavailable(LifecycleError):
    kind = "menu_item_unavailable"
    status_code = 422

    def __init__(self, menu_item_id: int, name: Optional[str] = None):
        self.menu_item_id = menu_item_id
        if name:
            message = f"Menu item '{name}' is not available"
        else:
            message = f"Menu item {menu_item_id} not found"
        super().__init__(message)


class InvalidTransition(LifecycleError):
    kind = "invalid_transition"
    status_code = 409

    def __init__(self, current_status: str, event: str, message: Optional[str] = None):
        self.current_status = current_status
        self.event = event
        super().__init__(message or f"Cannot {event} an order that is {current_status}")


class StaleOrderState(InvalidTransition):
    """The order changed between the caller's read and this write."""

    kind = "stale_state"

    def __init__(self, current_status: str, event: str, expected_status: Optional[str] = None):
        self.expected_status = expected_status
        super().__init__(
            current_status,
            event,
            f"Order was modified concurrently (now {current_status}); refresh and retry",
        )


class Forbidden(LifecycleError):
    kind = "forbidden"
    status_code = 403

    def __init__(self, role: str, action: str):
        self.role = role
        self.action = action
        super().__init__(f"Role '{role}' is not allowed to {action}")
