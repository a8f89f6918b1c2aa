"""
Lookup page parser.
Decodes one provider page into Symbol records, skipping unusable rows.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from pydantic import ValidationError

from symbol_catalog.config import ResponseSchema
from symbol_catalog.errors import InvalidCombination, MalformedResponse
from symbol_catalog.models.symbol import Symbol
from symbol_catalog.taxonomy import (
    DEFAULT_TAXONOMY,
    Category,
    Combination,
    Taxonomy,
    asset_class_for_type_code,
    category_for_label,
    exchange_label,
)
from symbol_catalog.utils.logger import get_logger


@dataclass
class ParsedPage:
    symbols: List[Symbol] = field(default_factory=list)
    has_next: bool = False
    entries: int = 0  # rows on the page, usable or not
    skipped: int = 0
    total: Optional[int] = None


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, dict):
        value = value.get("raw")
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _walk(payload: Any, path: Sequence[str]) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


class LookupParser:
    """Permissive parser: unknown fields are ignored, missing optional fields default."""

    def __init__(self, schema: Optional[ResponseSchema] = None, taxonomy: Optional[Taxonomy] = None):
        self.schema = schema or ResponseSchema()
        self.taxonomy = taxonomy or DEFAULT_TAXONOMY
        self.logger = get_logger(__name__)

    def parse_page(
        self,
        raw: bytes,
        combination: Optional[Combination] = None,
        *,
        offset: int = 0,
    ) -> ParsedPage:
        """
        Parse one page of lookup results.

        Args:
            raw: Response body
            combination: The queried combination; supplies asset class,
                         category and exchange for rows that omit them
            offset: Requested start offset, used when the page does not echo it

        Returns:
            ParsedPage with the usable symbols and whether another page follows

        Raises:
            MalformedResponse: body is not the expected structure (retryable)
            InvalidCombination: provider reported it rejects the query
        """
        payload = self._decode(raw)
        self._raise_for_error(payload)

        result = _walk(payload, self.schema.result_path)
        if isinstance(result, list):
            result = result[0] if result else {}
        if not isinstance(result, dict):
            raise MalformedResponse("Lookup payload has no result object")

        documents = result.get(self.schema.documents_key)
        if documents is None:
            documents = []
        if not isinstance(documents, list):
            raise MalformedResponse(f"'{self.schema.documents_key}' is not a list")

        page = ParsedPage(entries=len(documents), total=_to_int(result.get(self.schema.total_key)))
        for entry in documents:
            symbol = self._parse_entry(entry, combination)
            if symbol is None:
                page.skipped += 1
            else:
                page.symbols.append(symbol)

        page.has_next = self._has_next(result, len(documents), page.total, offset)
        if page.skipped:
            self.logger.debug("Skipped %s malformed rows for %s", page.skipped, combination)
        return page

    def _decode(self, raw: bytes) -> dict:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            # UnicodeDecodeError is a ValueError too
            raise MalformedResponse(f"Lookup page is not JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise MalformedResponse("Lookup page is not a JSON object")
        return payload

    def _raise_for_error(self, payload: dict) -> None:
        error = _walk(payload, self.schema.error_path)
        if not error:
            return
        if isinstance(error, dict):
            code = str(error.get(self.schema.error_code_key) or "")
            description = str(error.get(self.schema.error_description_key) or code)
        else:
            code = description = str(error)
        if code in self.schema.invalid_error_codes:
            raise InvalidCombination(f"Provider rejected query: {description}", context={"code": code})
        raise MalformedResponse(f"Provider error: {description}", context={"code": code})

    def _has_next(self, result: dict, count: int, total: Optional[int], offset: int) -> bool:
        # An empty page ends pagination even if the provider claims more
        if count == 0:
            return False
        if total is not None:
            start = _to_int(result.get(self.schema.start_key))
            if start is None:
                start = offset
            return start + count < total
        if self.schema.more_key:
            return bool(result.get(self.schema.more_key))
        return False

    @staticmethod
    def _first(entry: dict, fields: Sequence[str]) -> Optional[str]:
        for name in fields:
            value = entry.get(name)
            if isinstance(value, dict):
                value = value.get("raw") or value.get("fmt")
            if value is None:
                continue
            value = str(value).strip()
            if value:
                return value
        return None

    def _parse_entry(self, entry: Any, combination: Optional[Combination]) -> Optional[Symbol]:
        if not isinstance(entry, dict):
            return None

        ticker = self._first(entry, self.schema.ticker_fields)
        if not ticker:
            return None

        type_code = self._first(entry, self.schema.type_fields) or ""
        asset_class = asset_class_for_type_code(type_code)
        if asset_class is None and combination is not None:
            asset_class = combination.asset_class
        if asset_class is None:
            return None

        category = self._resolve_category(entry, asset_class, combination)
        if category is None:
            return None

        exchange = exchange_label(self._first(entry, self.schema.exchange_fields))
        if exchange is None and combination is not None:
            exchange = combination.exchange.value
        if exchange is None:
            return None

        try:
            return Symbol(
                ticker=ticker,
                name=self._first(entry, self.schema.name_fields) or "",
                asset_class=asset_class,
                category=category,
                exchange=exchange,
                type_code=type_code,
            )
        except ValidationError:
            return None

    def _resolve_category(self, entry: dict, asset_class, combination: Optional[Combination]) -> Optional[Category]:
        """Row category, else the queried one, else N/A; None if no valid pair results.

        A known row category that does not pair with the row's asset class
        rejects the row rather than being replaced by a fallback.
        """
        row_category = category_for_label(self._first(entry, self.schema.category_fields))
        if row_category is not None:
            return row_category if self.taxonomy.is_valid_pair(asset_class, row_category) else None
        candidates = []
        if combination is not None and combination.asset_class is asset_class:
            candidates.append(combination.category)
        candidates.append(Category.NONE)
        for category in candidates:
            if category is not None and self.taxonomy.is_valid_pair(asset_class, category):
                return category
        return None


_default_parser: Optional[LookupParser] = None


def parse_page(raw: bytes, combination: Optional[Combination] = None, *, offset: int = 0) -> ParsedPage:
    """Parse a page with the default response schema and taxonomy."""
    global _default_parser
    if _default_parser is None:
        _default_parser = LookupParser()
    return _default_parser.parse_page(raw, combination, offset=offset)
