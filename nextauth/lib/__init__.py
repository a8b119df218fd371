"""
Token and cookie engines.

Modules:
- jwt: session token encode / decode / get_token
- cookie: Set-Cookie construction and the default cookie set
"""
