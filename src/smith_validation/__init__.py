"""smith-validation: architectural rule engine for Swift sources."""

__version__ = "0.1.0"
