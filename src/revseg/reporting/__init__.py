"""Output builders: notification cache payloads and flag tables."""
