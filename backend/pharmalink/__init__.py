"""PharmaLink order and inventory fulfillment core."""

__version__ = "0.1.0"
