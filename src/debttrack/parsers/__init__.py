"""debttrack parsers - message extraction engines."""
