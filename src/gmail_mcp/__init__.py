"""
Gmail MCP Server
================

MCP server letting AI agents send email through the Gmail API, with every
send gated by an hourly/daily sliding-window rate limiter.
"""

__version__ = "2.0.0"

from src.gmail_mcp.config import RateLimitConfig, ServerConfig, load_config
from src.gmail_mcp.credentials import OAuthCredentials, retrieve_credentials
from src.gmail_mcp.gmail_client import GmailClient
from src.gmail_mcp.rate_limiter import RateLimiter
from src.gmail_mcp.server import GmailMCPServer, create_server

__all__ = [
    "GmailMCPServer",
    "create_server",
    "GmailClient",
    "RateLimiter",
    "OAuthCredentials",
    "retrieve_credentials",
    "RateLimitConfig",
    "ServerConfig",
    "load_config",
]
