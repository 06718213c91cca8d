"""Cache directory layout and host platform detection."""
