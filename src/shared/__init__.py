"""
Shared Layer - Cross-Cutting Concerns
Configuration, logging, database/redis clients, security and error contract.
"""
