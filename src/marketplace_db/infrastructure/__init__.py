"""
Infrastructure layer: database adapters, repositories and their decorators,
caching, auditing, monitoring and configuration.
"""
