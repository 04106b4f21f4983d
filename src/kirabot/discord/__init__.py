"""Discord bot integration for Kira Bot.

The bot runs in-process with the FastAPI keep-alive server, sharing the same
event loop. It routes prefixed text commands, slash commands, and reaction
events to the counting game, reaction-role, and embed builder engines.
"""
