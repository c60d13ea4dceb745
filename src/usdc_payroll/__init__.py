"""USDC payroll: on-chain payroll payments with at-most-once transfers."""

__version__ = "0.1.0"
