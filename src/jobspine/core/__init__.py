"""Framework primitives shared by the scheduler: errors, logging, config and persistence."""
