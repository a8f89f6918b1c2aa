from symbol_catalog.repositories.base_repository import BaseRepository
from symbol_catalog.repositories.symbol_repository import SymbolRepository

__all__ = ["BaseRepository", "SymbolRepository"]
