# =======================================================================================
# app/workers/__init__.py - Workers Package
# =======================================================================================
from .mqtt_worker import MqttWorker, OfflineSweeper

__all__ = ["MqttWorker", "OfflineSweeper"]
