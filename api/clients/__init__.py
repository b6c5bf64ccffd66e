"""
One thin client per external AI vendor.

Each client wraps a single vendor REST API with httpx and raises
`errors.ProviderError` on failure; route handlers decide how to surface it.
"""
