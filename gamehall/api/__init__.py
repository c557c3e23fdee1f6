"""
HTTP and WebSocket routers for the terminal
"""
