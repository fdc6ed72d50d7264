"""Condor MES — manufacturing execution backend.

Session revocation for bearer tokens and real-time push of sensor
readings, work-order and alert events to WebSocket subscribers.
"""

__version__ = "0.1.0"
