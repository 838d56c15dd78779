"""IT asset inventory and component issuance core."""

__version__ = "0.1.0"
