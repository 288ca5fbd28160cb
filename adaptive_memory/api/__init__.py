"""HTTP surface over the memory manager."""
