"""
Core orchestration pieces of the relay.
"""
