"""Per-session conversation machinery: wire messages, state, generator, monitor, handler."""
