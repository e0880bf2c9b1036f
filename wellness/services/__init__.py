"""Service layer: core payment and analytics logic plus backend access."""
