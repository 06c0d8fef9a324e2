"""Identity core: tokens, sessions, rate limiting and request trust"""
