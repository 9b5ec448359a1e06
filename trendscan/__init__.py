"""trendscan - round-robin MA30 band trend scanner with live turn alerts."""

__version__ = "0.1.0"
