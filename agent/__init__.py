"""
Collector Agent

Samples host metrics and ships them to the collector server.
"""
