class MarketplaceStoreError(ValueError):
    """Base class for user-visible store errors."""


class MarketplaceValidationError(MarketplaceStoreError):
    pass


class MarketplaceNotFoundError(MarketplaceStoreError):
    pass


class MarketplaceConflictError(MarketplaceStoreError):
    pass


class MarketplacePermissionError(MarketplaceStoreError):
    pass
