class BillingError(Exception):
    """Base exception for the billing service."""

    pass


class RetryableBillingError(BillingError):
    """Failure the provider should retry by redelivering the webhook."""

    pass


class UserNotFoundError(BillingError):
    """Raised when a payer email has no matching user."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"No user registered for email '{email}'")


class ProviderRejectedError(BillingError):
    """Raised when the provider answers but refuses the request or reports non-success."""

    def __init__(self, reference: str | None, detail: str = ""):
        self.reference = reference
        self.detail = detail
        super().__init__(f"Provider rejected '{reference}': {detail}" if detail else f"Provider rejected '{reference}'")


class ProviderUnreachableError(RetryableBillingError):
    """Raised when the provider cannot be reached after all retry attempts."""

    pass


class DirectoryUnavailableError(RetryableBillingError):
    """Raised when the user directory does not answer in time."""

    pass


class RecordWriteFailedError(RetryableBillingError):
    """Raised when the subscription record could not be persisted."""

    def __init__(self, reference: str, reason: str):
        self.reference = reference
        self.reason = reason
        super().__init__(f"Subscription write failed for '{reference}': {reason}")


class LockTimeoutError(RetryableBillingError):
    """Raised when a per-user subscription lock cannot be acquired in time."""

    def __init__(self, user_id: str, waited: float):
        self.user_id = user_id
        self.waited = waited
        super().__init__(f"Could not lock subscription for user '{user_id}' within {waited}s")
