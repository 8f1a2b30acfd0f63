"""
Nimbus CLI - Run and exercise connector flows from the command line.

Usage:
    nimbus validate flows/telemetry.yaml
    nimbus run flows/telemetry.yaml --mqtt-broker localhost --mqtt-topic "sensors/#" --inject-into telemetry-out
    nimbus inject flows/telemetry.yaml telemetry-out --payload '{"temperature": 21.5}'
"""

__version__ = "1.0.0"
