"""Reference remote store for craftsync clients."""
