"""Domain records and REST payload schemas."""
