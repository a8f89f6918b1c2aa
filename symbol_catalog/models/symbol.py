"""
Symbol model - the canonical record for one listed instrument.
"""
import html
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, field_validator

from symbol_catalog.taxonomy import AssetClass, Category, is_wildcard


class Symbol(BaseModel):
    """Symbol (instrument) data model, keyed by (ticker, exchange)"""
    ticker: str
    name: str = ""
    asset_class: AssetClass
    category: Category = Category.NONE
    exchange: str
    type_code: str = ""  # provider quote type, kept verbatim
    first_seen: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True  # For Pydantic v2 ORM mode

    @field_validator("ticker")
    @classmethod
    def _check_ticker(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("ticker must not be empty")
        return value

    @field_validator("name", "type_code", mode="before")
    @classmethod
    def _clean_text(cls, value) -> str:
        if value is None:
            return ""
        return html.unescape(str(value)).strip()

    @field_validator("asset_class", "category")
    @classmethod
    def _reject_wildcard(cls, value):
        if is_wildcard(value):
            raise ValueError("wildcard is a query value and cannot be stored")
        return value

    @field_validator("exchange", mode="before")
    @classmethod
    def _check_exchange(cls, value) -> str:
        if isinstance(value, Enum):
            value = value.value
        value = "" if value is None else str(value).strip()
        if not value or is_wildcard(value):
            raise ValueError("exchange must be a concrete venue")
        return value

    @property
    def key(self) -> Tuple[str, str]:
        """Natural key: two records with the same key are the same instrument."""
        return self.ticker, self.exchange

    def same_listing(self, other: "Symbol") -> bool:
        """True when every catalogued field matches (timestamps ignored)."""
        return self.to_row() == other.to_row()

    def to_row(self) -> Tuple[str, str, str, str, str, str]:
        """Column values in table order for database writes"""
        return (
            self.ticker,
            self.exchange,
            self.name,
            self.asset_class.value,
            self.category.value,
            self.type_code,
        )


def merge_symbol(target: Dict[Tuple[str, str], Symbol], symbol: Symbol) -> None:
    """
    Add a symbol to a key -> Symbol map.

    First writer wins per key; a missing display name is filled by the first
    later record that has one.
    """
    existing = target.get(symbol.key)
    if existing is None:
        target[symbol.key] = symbol
    elif not existing.name and symbol.name:
        target[symbol.key] = existing.model_copy(update={"name": symbol.name})
