"""Loading and detection services."""
