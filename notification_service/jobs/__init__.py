"""Job models, queue adapters and the bounded-concurrency worker pool."""
