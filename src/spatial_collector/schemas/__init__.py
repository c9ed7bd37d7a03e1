"""JSON schemas for spatial collector configuration files.

- settings.schema.json: hubs, provider endpoints, retry and login settings
"""
