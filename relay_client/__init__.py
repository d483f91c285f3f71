"""
Client package for the chat relay.

Contains the asyncio TCP chat client and a terminal front end.
"""
