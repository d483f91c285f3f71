"""
Shared definitions for the chat relay.

Contains the event names, defaults and frame helpers used by both the server
and the terminal client.
"""
