from symbol_catalog.parsers.lookup_parser import LookupParser, ParsedPage, parse_page

__all__ = ["LookupParser", "ParsedPage", "parse_page"]
