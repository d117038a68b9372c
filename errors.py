# errors.py


class SalesError(ValueError):
    """Base class for every recoverable error raised by the sales desk."""


class ValidationError(SalesError):
    """Missing customer name, empty cart or an out-of-range input."""


class Shortage:
    """One cart line asking for more than the shelf holds."""
    def __init__(self, product_id: str, product_name: str, requested: int, available: int):
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.available = available

    def __repr__(self):
        return (f"Shortage({self.product_id!r}, requested={self.requested}, "
                f"available={self.available})")


class StockError(SalesError):
    """
    Raised when one or more lines exceed current stock.
    `shortages` lists every offending product, not just the first.
    """
    def __init__(self, shortages):
        self.shortages = list(shortages)
        parts = [f"{s.product_name} (requested {s.requested}, available {s.available})"
                 for s in self.shortages]
        super().__init__("Insufficient stock: " + ", ".join(parts))

    @property
    def available(self):
        """Available quantity of the first offending product."""
        return self.shortages[0].available if self.shortages else None


class NotFoundError(SalesError):
    """A record looked up by id does not exist."""


class DanglingReferenceWarning(UserWarning):
    """A cart line points at a product that is no longer in the catalog."""
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is no longer in the catalog; line skipped.")


class AssetUnavailable(UserWarning):
    """An invoice image (logo, watermark, QR) could not be fetched or decoded."""
    def __init__(self, name: str, source, reason: str):
        self.name = name
        self.source = source
        self.reason = reason
        super().__init__(f"Asset '{name}' unavailable from {source}: {reason}")
