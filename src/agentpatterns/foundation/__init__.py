"""Foundation - Core building blocks for agentpatterns.

Contains: error taxonomy, schema declarations and validation, config, testing.
"""
