"""
Proxy Gateway Package.

Stateless HTTP edge: bearer-token claims validation, the optional profile
access policy, the upstream fetch and the streaming HTML rewrite.

Usage:
    from familysafe.gateway import create_gateway_app
"""

from familysafe.gateway.app import create_gateway_app
from familysafe.gateway.rewriter import AttributeRewriter, rewrite_html, rewrite_stream
from familysafe.gateway.tokens import extract_bearer_token, verify_id_token

__all__ = [
    "AttributeRewriter",
    "create_gateway_app",
    "extract_bearer_token",
    "rewrite_html",
    "rewrite_stream",
    "verify_id_token",
]
