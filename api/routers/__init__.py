"""HTTP routers, one per feature, mounted under /api."""
