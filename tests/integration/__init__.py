"""
Integration tests for Fusion.

These tests drive a running application over its WebSocket endpoint,
covering queries, writes, subscriptions and snapshot persistence.
"""
