"""Review sync: counter repair, the sync queue, and queue processing."""
