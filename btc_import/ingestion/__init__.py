"""
Ingestion package: fetch, resolve, map, load and assess one import day.
"""
