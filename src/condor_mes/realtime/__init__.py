"""Real-time infrastructure — in-process WebSocket fan-out.

Learn: Events flow in one direction:
1. Request handlers → notify_* helpers → ConnectionRegistry.broadcast
2. ConnectionRegistry → every open WebSocket subscribed to (kind, target)

There is no broker: the registry lives in the API process and only
reaches clients connected to that process.
"""
