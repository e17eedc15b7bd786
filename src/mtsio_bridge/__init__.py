"""
mtsio_bridge

This package bridges JSON read/write requests arriving over MQTT
to the `mts-io-sysfs` device-control utility and publishes the
results back as JSON responses.
"""
__version__ = "0.1.0"
