"""
tempsensor Test Suite
=====================

Tests de invariantes críticas.

Philosophy:
- Focus on invariants (properties that must always be true)
- Test critical paths (schedule, publish cycle, MQTT)
- Mock-based: no requiere broker MQTT ni bus 1-Wire reales

Modules:
- test_component: configuración, publish cycle, lifecycle
- test_scheduling: semántica fixed-rate, cancel, interrupt
- test_sensors: parsing del bus 1-Wire (sysfs fake)
- test_config_validation: validación Pydantic
- test_mqtt_commands: Control Plane y CommandRegistry
- test_cloud_mqtt: Cloud service sobre paho (mockeado)
- test_controller: host controller
- test_logging: JSON logging y trace context
"""
