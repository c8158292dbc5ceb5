"""POS provider implementations."""

from .phorest import PhorestClient, PhorestConfig

__all__ = ["PhorestClient", "PhorestConfig"]
