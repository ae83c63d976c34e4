"""On & Order: digits-only code-breaking matches against the CPU, a local friend, or an online peer."""
