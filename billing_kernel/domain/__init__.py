"""Pure domain value objects for the billing kernel. Zero I/O."""
