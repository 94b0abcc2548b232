"""
Relay Gateway.

Real-time group messaging relay: authenticated WebSocket clients join a
group and exchange messages with the other members of that group.
"""
