"""HTTP endpoint module for serverpanel.

A FastAPI application that starts, stops and streams the output of the
managed game server, with a password gate in front of every mutating
request.
"""
