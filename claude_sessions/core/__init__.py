"""UI-independent session monitor: records, parsing, scanning, watching."""
