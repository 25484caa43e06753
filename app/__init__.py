# =======================================================================================
# app/__init__.py - Package Initialization
# =======================================================================================
"""
Smart Home Door Access Backend

Single-door access control for a smart home: PIN and RFID authentication,
card enrollment, access history, alerts and push notifications, talking to
the door controller over MQTT.
"""

__version__ = "1.0.0"
