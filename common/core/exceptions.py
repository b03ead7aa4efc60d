class BillingLedgerError(Exception):
    """Base class for errors raised out of the billing ledger."""


class PaymentProviderError(BillingLedgerError):
    """A payment provider could not be reached or returned an unusable response."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")
