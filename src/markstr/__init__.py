"""markstr - covenant coin pools for binary prediction markets (CTV + CSFS on Taproot)."""

__version__ = "0.1.0"
