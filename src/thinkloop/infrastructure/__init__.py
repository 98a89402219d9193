"""Infrastructure adapters: model transport, remote tools and memory storage."""
