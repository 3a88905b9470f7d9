"""
Collector Server

Receives agent telemetry over TCP, stores it and serves it over HTTP.
"""
